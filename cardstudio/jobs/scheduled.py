"""Run every due schedule once; meant for cron or the Celery beat task."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from cardstudio.models import ScheduleExecution
from cardstudio.services import build_services

logger = logging.getLogger(__name__)


async def run_due() -> list[ScheduleExecution]:
    load_dotenv()
    services = build_services()
    try:
        executions = await services.schedules.run_due_schedules()
    finally:
        await services.close()
    failed = [execution for execution in executions if not execution.success]
    logger.info("Ran %s due schedule(s), %s failed", len(executions), len(failed))
    return executions


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    asyncio.run(run_due())


if __name__ == "__main__":
    main()
