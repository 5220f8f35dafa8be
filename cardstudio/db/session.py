"""Database engine helpers."""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

DEFAULT_DATABASE_URL = "sqlite:///cardstudio.db"


def create_engine_from_env(url: str | None = None) -> Engine:
    """Create an engine using the DATABASE_URL environment variable."""
    url = url or os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
    connect_args = {}
    if url.startswith("sqlite"):
        # requests and the migration step run on different threads
        connect_args["check_same_thread"] = False
    return create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)
