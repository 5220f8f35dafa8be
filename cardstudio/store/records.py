"""JSON record collections kept under a single key-value entry.

Every mutation is a read-merge-write performed under the store's lock, so
concurrent appends from one process never drop each other's entries.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from cardstudio.errors import NotFoundError, StorageError
from cardstudio.models import Schedule
from cardstudio.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100

R = TypeVar("R", bound=BaseModel)


class _JsonCollection(Generic[R]):
    def __init__(self, kv: KeyValueStore, key: str, model: type[R]) -> None:
        self.kv = kv
        self.key = key
        self._adapter = TypeAdapter(list[model])
        self._lock = asyncio.Lock()

    async def _read(self) -> list[R]:
        raw = await self.kv.get(self.key)
        if not raw:
            return []
        try:
            return self._adapter.validate_json(raw)
        except PydanticValidationError as exc:
            raise StorageError(f"Stored {self.key} is unreadable: {exc}") from exc

    async def _write(self, records: list[R]) -> None:
        await self.kv.set(self.key, self._adapter.dump_json(records).decode())


class HistoryStore(_JsonCollection[R]):
    """Newest-first history capped at ``limit`` entries."""

    def __init__(self, kv: KeyValueStore, key: str, model: type[R], *, limit: int = HISTORY_LIMIT) -> None:
        super().__init__(kv, key, model)
        self.limit = limit

    async def append(self, entry: R) -> None:
        async with self._lock:
            entries = [item for item in await self._read() if item.id != entry.id]
            entries.insert(0, entry)
            await self._write(entries[: self.limit])

    async def recent(self, limit: int = 20) -> list[R]:
        return (await self._read())[:limit]


class ScheduleStore(_JsonCollection[Schedule]):
    def __init__(self, kv: KeyValueStore, key: str = "schedules") -> None:
        super().__init__(kv, key, Schedule)

    async def all(self) -> list[Schedule]:
        return await self._read()

    async def get(self, schedule_id: str) -> Schedule:
        for schedule in await self._read():
            if schedule.id == schedule_id:
                return schedule
        raise NotFoundError(f"Schedule {schedule_id} not found")

    async def save(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            schedules = await self._read()
            for index, existing in enumerate(schedules):
                if existing.id == schedule.id:
                    schedules[index] = schedule
                    break
            else:
                schedules.append(schedule)
            await self._write(schedules)
        return schedule

    async def update(self, schedule_id: str, change: Callable[[Schedule], Schedule]) -> Schedule:
        """Replace a schedule with ``change(current)``; nothing is written if it raises."""
        async with self._lock:
            schedules = await self._read()
            for index, existing in enumerate(schedules):
                if existing.id == schedule_id:
                    schedules[index] = change(existing)
                    await self._write(schedules)
                    return schedules[index]
        raise NotFoundError(f"Schedule {schedule_id} not found")

    async def delete(self, schedule_id: str) -> None:
        async with self._lock:
            schedules = await self._read()
            remaining = [item for item in schedules if item.id != schedule_id]
            if len(remaining) == len(schedules):
                raise NotFoundError(f"Schedule {schedule_id} not found")
            await self._write(remaining)
        logger.info("Deleted schedule %s", schedule_id)
