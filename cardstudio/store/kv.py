"""String key-value backends used to persist schedules and histories."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cardstudio.errors import StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = os.environ.get("KV_PREFIX", "cardstudio:")


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class SqlKeyValueStore:
    """Key-value pairs in the ``kv_store`` table created by ``run_migrations``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get(self, key: str) -> str | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(text("SELECT value FROM kv_store WHERE key = :key"), {"key": key}).first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not read {key}: {exc}") from exc
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        stmt = text(
            """
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (:key, :value, :updated_at)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt, {"key": key, "value": value, "updated_at": datetime.now(timezone.utc)})
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not write {key}: {exc}") from exc


class RedisKeyValueStore:
    def __init__(self, client: aioredis.Redis | None = None, *, prefix: str = KEY_PREFIX) -> None:
        self.client = client or aioredis.from_url(
            os.environ.get("REDIS_URL", "redis://redis:6379/0"), decode_responses=True
        )
        self.prefix = prefix

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(self.prefix + key)
        except RedisError as exc:
            raise StorageError(f"Could not read {key}: {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(self.prefix + key, value)
        except RedisError as exc:
            raise StorageError(f"Could not write {key}: {exc}") from exc

    async def close(self) -> None:
        await self.client.aclose()
