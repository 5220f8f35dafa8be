"""Seed the key-value store with demo schedules."""

from __future__ import annotations

import asyncio

from dotenv import load_dotenv

from cardstudio.logic.schedule import new_schedule
from cardstudio.models import Frequency, SearchType
from cardstudio.services import build_kv
from cardstudio.store.records import ScheduleStore
from cardstudio.utils.dates import now_in_tz

DEMO_SCHEDULES = [
    {
        "schedule_id": "demo-daily",
        "name": "Daily best sellers",
        "frequency": Frequency.DAILY,
        "time": "09:00",
        "criteria": {"search_type": SearchType.BEST_SELLERS, "limit": 3},
    },
    {
        "schedule_id": "demo-weekly",
        "name": "Weekday discounts",
        "frequency": Frequency.WEEKLY,
        "time": "12:30",
        "weekdays": (1, 3, 5),
        "criteria": {"search_type": SearchType.BIGGEST_DISCOUNTS, "limit": 5},
        "config": {"template": "vibrant", "include_second_variation": False},
    },
    {
        "schedule_id": "demo-monthly",
        "name": "Month-end top rated",
        "frequency": Frequency.MONTHLY,
        "time": "18:00",
        "day_of_month": 31,
        "criteria": {"search_type": SearchType.BEST_RATED, "limit": 5},
        "config": {"template": "elegant", "use_ai": False},
    },
]


async def seed() -> None:
    store = ScheduleStore(build_kv())
    now = now_in_tz()
    for item in DEMO_SCHEDULES:
        fields = dict(item)
        schedule = new_schedule(fields.pop("name"), now, **fields)
        await store.save(schedule)
        print(f"Seeded {schedule.id}: next run {schedule.next_run}")


def main() -> None:
    load_dotenv()
    asyncio.run(seed())
    print("Seed complete")


if __name__ == "__main__":
    main()
