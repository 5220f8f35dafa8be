"""Recurrence rules for card schedules.

Weekdays are numbered 0 (Sunday) through 6 (Saturday). All computations run
in the configured timezone; naive datetimes are interpreted there.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from typing import Any

import pendulum

from cardstudio.errors import ValidationError
from cardstudio.models import Frequency, Schedule, ScheduleStatus, validate_record
from cardstudio.utils.dates import as_pendulum, sunday_based_weekday

logger = logging.getLogger(__name__)

RUN_TIMEOUT_MINUTES = int(os.environ.get("SCHEDULE_RUN_TIMEOUT_MINUTES", "30"))


def calculate_next_run(schedule: Schedule, now: datetime) -> pendulum.DateTime:
    """First instant after ``now`` matching the schedule's recurrence.

    A monthly schedule whose day is today counts as already passed once its
    time of day has passed, and runs next month instead.
    """
    now = as_pendulum(now)
    hour, minute = schedule.hour_minute
    candidate = now.set(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate = candidate.add(days=1)

    if schedule.frequency is Frequency.WEEKLY:
        current = sunday_based_weekday(candidate)
        days = sorted(schedule.weekdays)
        upcoming = [day for day in days if day >= current]
        if upcoming:
            candidate = candidate.add(days=upcoming[0] - current)
        else:
            candidate = candidate.add(days=7 - current + days[0])
    elif schedule.frequency is Frequency.MONTHLY:
        target = min(schedule.day_of_month, candidate.days_in_month)
        if candidate.day > target:
            # pendulum clamps to the last day of a shorter month
            candidate = candidate.add(months=1)
            target = min(schedule.day_of_month, candidate.days_in_month)
        candidate = candidate.set(day=target)
    return candidate


def is_running(schedule: Schedule, now: datetime) -> bool:
    """True while a claimed run is in progress and has not gone stale."""
    if schedule.status is not ScheduleStatus.RUNNING or schedule.run_started_at is None:
        return False
    deadline = as_pendulum(schedule.run_started_at).add(minutes=RUN_TIMEOUT_MINUTES)
    return as_pendulum(now) < deadline


def is_due(schedule: Schedule, now: datetime) -> bool:
    if not schedule.enabled or schedule.status is ScheduleStatus.COMPLETED:
        return False
    if is_running(schedule, now):
        return False
    if schedule.next_run is None:
        return False
    return as_pendulum(schedule.next_run) <= as_pendulum(now)


def replace_schedule(schedule: Schedule, **changes: Any) -> Schedule:
    """Validated copy of ``schedule`` with ``changes`` applied."""
    if "id" in changes and changes["id"] != schedule.id:
        raise ValidationError("Schedule ids cannot change")
    data = schedule.model_dump()
    data.update(changes)
    return validate_record(Schedule, data)


def reschedule(schedule: Schedule, now: datetime) -> Schedule:
    return replace_schedule(schedule, next_run=calculate_next_run(schedule, now))


def toggle_weekday(schedule: Schedule, day: int) -> Schedule:
    """Add or remove ``day``; removing the only selected weekday changes nothing."""
    if not 0 <= day <= 6:
        raise ValidationError(f"weekday {day} outside 0 (Sunday) .. 6 (Saturday)")
    weekdays = set(schedule.weekdays)
    if day in weekdays:
        if len(weekdays) == 1:
            logger.info("Keeping last weekday %s on schedule %s", day, schedule.id)
            return schedule
        weekdays.remove(day)
    else:
        weekdays.add(day)
    return replace_schedule(schedule, weekdays=tuple(sorted(weekdays)))


def new_schedule(name: str, now: datetime, *, schedule_id: str | None = None, **fields: Any) -> Schedule:
    data = {"id": schedule_id or uuid.uuid4().hex, "name": name, "created_at": as_pendulum(now), **fields}
    return reschedule(validate_record(Schedule, data), now)
