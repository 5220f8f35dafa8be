"""Schedule management and unattended execution."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
import pendulum

from cardstudio.email.render import render_execution_email
from cardstudio.errors import ScheduleBusyError
from cardstudio.logic.generation import CardGenerator
from cardstudio.logic.schedule import (
    calculate_next_run,
    is_due,
    is_running,
    new_schedule,
    replace_schedule,
    reschedule,
    toggle_weekday,
)
from cardstudio.models import (
    ExecutionStatus,
    Frequency,
    GenerationMode,
    ProductOutcome,
    Schedule,
    ScheduleExecution,
    ScheduleStatus,
)
from cardstudio.sources import ProductSource
from cardstudio.store.records import HistoryStore, ScheduleStore
from cardstudio.utils.dates import as_pendulum, now_in_tz
from cardstudio.utils.esp import EmailMessage, EmailProvider

logger = logging.getLogger(__name__)

TIMING_FIELDS = frozenset({"enabled", "frequency", "time", "weekdays", "day_of_month"})


class ScheduleEngine:
    def __init__(
        self,
        store: ScheduleStore,
        generator: CardGenerator,
        source: ProductSource,
        executions: HistoryStore[ScheduleExecution],
        *,
        email: EmailProvider | None = None,
        clock: Callable[[], pendulum.DateTime] = now_in_tz,
    ) -> None:
        self.store = store
        self.generator = generator
        self.source = source
        self.execution_store = executions
        self.email = email
        self.clock = clock

    async def list_schedules(self) -> list[Schedule]:
        return await self.store.all()

    async def get_schedule(self, schedule_id: str) -> Schedule:
        return await self.store.get(schedule_id)

    async def create_schedule(self, name: str, **fields: Any) -> Schedule:
        schedule = await self.store.save(new_schedule(name, self.clock(), **fields))
        logger.info("Created schedule %s (%s), next run %s", schedule.id, schedule.frequency.value, schedule.next_run)
        return schedule

    async def update_schedule(self, schedule_id: str, **changes: Any) -> Schedule:
        """Apply ``changes``; timing changes recompute the next run and revive completed schedules."""
        now = self.clock()

        def change(current: Schedule) -> Schedule:
            updated = replace_schedule(current, **changes)
            if TIMING_FIELDS & changes.keys():
                if updated.status is ScheduleStatus.COMPLETED:
                    updated = replace_schedule(updated, status=ScheduleStatus.PENDING)
                updated = reschedule(updated, now)
            return updated

        return await self.store.update(schedule_id, change)

    async def toggle_weekday(self, schedule_id: str, day: int) -> Schedule:
        now = self.clock()
        return await self.store.update(schedule_id, lambda current: reschedule(toggle_weekday(current, day), now))

    async def delete_schedule(self, schedule_id: str) -> None:
        await self.store.delete(schedule_id)

    async def executions(self, limit: int = 20) -> list[ScheduleExecution]:
        return await self.execution_store.recent(limit)

    async def run_schedule(self, schedule_id: str, now: datetime | None = None) -> ScheduleExecution:
        now = as_pendulum(now) if now else self.clock()

        def claim(current: Schedule) -> Schedule:
            if is_running(current, now):
                raise ScheduleBusyError(f"Schedule {current.id} is already running since {current.run_started_at}")
            return replace_schedule(current, status=ScheduleStatus.RUNNING, run_started_at=now)

        schedule = await self.store.update(schedule_id, claim)
        logger.info("Running schedule %s (%s)", schedule.id, schedule.name)
        started = time.perf_counter()

        error: str | None = None
        try:
            products = await self.source.search_products(schedule.criteria)
        except Exception as exc:
            logger.exception("Product search failed for schedule %s", schedule.id)
            products = []
            error = f"Product search failed: {exc}"
        if not products and error is None:
            error = "No products available for the schedule criteria"

        config = schedule.config.model_copy(
            update={"mode": GenerationMode.AUTOMATED, "schedule_id": schedule.id, "created_at": now}
        )
        outcomes: list[ProductOutcome] = []
        for product in products:
            result = await self.generator.generate_cards(product, config)
            outcomes.append(
                ProductOutcome(
                    product_id=product.id,
                    product_name=product.name,
                    success=result.success,
                    card_urls=result.card_urls,
                    error=result.error,
                )
            )
        success_count = sum(1 for outcome in outcomes if outcome.success)
        if products and success_count == 0:
            error = f"All {len(products)} products failed"

        execution = ScheduleExecution(
            id=uuid.uuid4().hex,
            schedule_id=schedule.id,
            schedule_name=schedule.name,
            started_at=now,
            duration_seconds=round(time.perf_counter() - started, 3),
            status=ExecutionStatus.ERROR if error else ExecutionStatus.COMPLETED,
            product_count=len(products),
            success_count=success_count,
            results=tuple(outcomes),
            error=error,
        )

        def finish(current: Schedule) -> Schedule:
            if current.frequency is Frequency.ONCE:
                return replace_schedule(
                    current, status=ScheduleStatus.COMPLETED, last_run=now, next_run=None, last_error=error
                )
            return replace_schedule(
                current,
                status=ScheduleStatus.ERROR if error else ScheduleStatus.PENDING,
                last_run=now,
                next_run=calculate_next_run(current, now),
                last_error=error,
            )

        schedule = await self.store.update(schedule.id, finish)
        await self.execution_store.append(execution)
        logger.info(
            "Schedule %s finished: %s/%s products, next run %s",
            schedule.id,
            success_count,
            len(products),
            schedule.next_run,
        )
        await self._notify(schedule, execution)
        return execution

    async def run_due_schedules(self, now: datetime | None = None) -> list[ScheduleExecution]:
        now = as_pendulum(now) if now else self.clock()
        due = [schedule for schedule in await self.store.all() if is_due(schedule, now)]
        logger.info("%s schedule(s) due at %s", len(due), now)
        executions: list[ScheduleExecution] = []
        for schedule in due:
            try:
                executions.append(await self.run_schedule(schedule.id, now))
            except ScheduleBusyError as exc:
                logger.info("Skipping schedule %s: %s", schedule.id, exc)
            except Exception:
                logger.exception("Schedule %s could not be executed", schedule.id)
        return executions

    async def _notify(self, schedule: Schedule, execution: ScheduleExecution) -> None:
        if not schedule.notify_email or self.email is None:
            return
        subject, html = render_execution_email(schedule, execution)
        try:
            await self.email.send(EmailMessage(to=schedule.notify_email, subject=subject, html=html))
        except httpx.HTTPError as exc:
            logger.warning("Notification for schedule %s failed: %s", schedule.id, exc)
