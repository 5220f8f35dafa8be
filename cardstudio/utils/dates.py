"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import datetime

import pendulum

DEFAULT_TZ = "America/Sao_Paulo"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def as_pendulum(value: datetime) -> pendulum.DateTime:
    """Coerce a datetime into a tz-aware pendulum DateTime.

    Naive values are interpreted in the configured timezone.
    """
    if value.tzinfo is None:
        return pendulum.instance(value, tz=pendulum.timezone(timezone_name()))
    if isinstance(value, pendulum.DateTime):
        return value
    return pendulum.instance(value)


def sunday_based_weekday(value: datetime) -> int:
    """Weekday numbered 0 (Sunday) .. 6 (Saturday)."""
    return value.isoweekday() % 7


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")
