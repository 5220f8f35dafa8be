"""Wiring of stores, clients and engines from environment configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import httpx
from sqlalchemy.engine import Engine

from cardstudio.db.migrate import run_migrations
from cardstudio.db.session import create_engine_from_env
from cardstudio.describe.gemini import build_cascade
from cardstudio.describe.provider import DescriptionProvider
from cardstudio.jobs.schedules import ScheduleEngine
from cardstudio.logic.generation import CardGenerator
from cardstudio.models import GenerationHistoryEntry, ScheduleExecution
from cardstudio.render.card import CardRenderer
from cardstudio.render.images import ImageLoader
from cardstudio.sources import ProductSource, YamlProductSource
from cardstudio.storage.blobs import BlobStore, LocalBlobStore, S3BlobStore
from cardstudio.store.kv import KeyValueStore, RedisKeyValueStore, SqlKeyValueStore
from cardstudio.store.records import HistoryStore, ScheduleStore
from cardstudio.utils.esp import EmailProvider
from cardstudio.utils.rate_limit import WindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    generator: CardGenerator
    schedules: ScheduleEngine
    blob_store: BlobStore
    clients: list[httpx.AsyncClient] = field(default_factory=list)

    async def close(self) -> None:
        for client in self.clients:
            await client.aclose()


def build_kv(engine: Engine | None = None) -> KeyValueStore:
    backend = os.environ.get("KV_BACKEND", "sql")
    if backend == "redis":
        return RedisKeyValueStore()
    engine = engine or create_engine_from_env()
    run_migrations(engine)
    return SqlKeyValueStore(engine)


def build_blob_store() -> BlobStore:
    if os.environ.get("BLOB_BACKEND", "local") == "s3":
        return S3BlobStore()
    return LocalBlobStore()


def build_provider(session: httpx.AsyncClient) -> DescriptionProvider:
    limiter = WindowRateLimiter(max_calls=int(os.environ.get("TEXT_RATE_LIMIT", "10")))
    return DescriptionProvider(build_cascade(rate_limiter=limiter, session=session))


def build_services(
    *,
    kv: KeyValueStore | None = None,
    provider: DescriptionProvider | None = None,
    source: ProductSource | None = None,
    blob_store: BlobStore | None = None,
    image_loader: ImageLoader | None = None,
) -> Services:
    clients: list[httpx.AsyncClient] = []
    if provider is None:
        text_session = httpx.AsyncClient(timeout=30.0)
        clients.append(text_session)
        provider = build_provider(text_session)
    if image_loader is None:
        image_session = httpx.AsyncClient(timeout=20.0, follow_redirects=True)
        clients.append(image_session)
        image_loader = ImageLoader(session=image_session)
    kv = kv or build_kv()
    blob_store = blob_store or build_blob_store()

    generator = CardGenerator(
        provider,
        CardRenderer(),
        image_loader,
        blob_store,
        HistoryStore(kv, "generation_history", GenerationHistoryEntry),
    )
    schedules = ScheduleEngine(
        ScheduleStore(kv),
        generator,
        source or YamlProductSource(),
        HistoryStore(kv, "schedule_executions", ScheduleExecution),
        email=EmailProvider(),
    )
    logger.info("Services ready (kv=%s, blobs=%s)", type(kv).__name__, type(blob_store).__name__)
    return Services(generator=generator, schedules=schedules, blob_store=blob_store, clients=clients)
