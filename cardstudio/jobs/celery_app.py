"""Celery configuration for the schedule runner."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from cardstudio.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("cardstudio", broker=broker_url, backend=backend_url, include=["cardstudio.jobs.scheduled"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "run-due-schedules": {
        "task": "cardstudio.jobs.scheduled.run_due",
        "schedule": crontab(minute="*"),
    },
}


@celery_app.task(name="cardstudio.jobs.scheduled.run_due")
def run_due_task() -> int:  # pragma: no cover - executed by worker
    import asyncio

    from cardstudio.jobs.scheduled import run_due

    return len(asyncio.run(run_due()))
