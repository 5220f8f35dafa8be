"""Card generation: description, rendering and artifact storage for one product."""

from __future__ import annotations

import logging
import time
import uuid

from PIL import Image

from cardstudio.describe.provider import DescriptionOptions, DescriptionProvider
from cardstudio.errors import StorageError
from cardstudio.models import (
    CardGenerationConfig,
    CardGenerationResult,
    GenerationHistoryEntry,
    GenerationMetadata,
    GenerationMode,
    OutputFormat,
    Product,
    Template,
)
from cardstudio.render.card import CardRenderer
from cardstudio.render.images import ImageLoader
from cardstudio.storage.blobs import BlobStore
from cardstudio.store.records import HistoryStore
from cardstudio.utils.dates import now_in_tz

logger = logging.getLogger(__name__)

ALTERNATES = {
    Template.MODERN: Template.ELEGANT,
    Template.ELEGANT: Template.BOLD,
    Template.BOLD: Template.MINIMAL,
    Template.MINIMAL: Template.VIBRANT,
    Template.VIBRANT: Template.MODERN,
}
EXTENSIONS = {OutputFormat.PNG: "png", OutputFormat.JPEG: "jpg"}


def alternate_template(template: Template) -> Template:
    return ALTERNATES[Template(template)]


class CardGenerator:
    def __init__(
        self,
        provider: DescriptionProvider,
        renderer: CardRenderer,
        image_loader: ImageLoader,
        blob_store: BlobStore,
        history: HistoryStore[GenerationHistoryEntry] | None = None,
    ) -> None:
        self.provider = provider
        self.renderer = renderer
        self.image_loader = image_loader
        self.blob_store = blob_store
        self.history_store = history

    async def generate_cards(self, product: Product, config: CardGenerationConfig) -> CardGenerationResult:
        """Never raises; failures come back as ``success=False`` results."""
        started = time.perf_counter()
        primary = config.template
        secondary = alternate_template(primary) if config.include_second_variation else None
        stored: list[str] = []
        try:
            description = await self.provider.provide_description(product, DescriptionOptions.from_config(config))
            image = await self.image_loader.load(product.image_url)
            card_urls = await self._render_variant(product, description, config, primary, image, stored)
            secondary_urls = None
            if secondary is not None:
                secondary_urls = await self._render_variant(product, description, config, secondary, image, stored)
        except Exception as exc:
            logger.warning("Card generation failed for product %s: %s", product.id, exc)
            await self._discard(stored)
            return CardGenerationResult(
                success=False,
                product=product,
                metadata=self._metadata(started, config, secondary),
                error=str(exc) or exc.__class__.__name__,
            )

        result = CardGenerationResult(
            success=True,
            card_urls=card_urls,
            secondary_card_urls=secondary_urls,
            description=description,
            product=product,
            metadata=self._metadata(started, config, secondary),
        )
        logger.info(
            "Generated %s card(s) for product %s in %sms",
            len(card_urls) + len(secondary_urls or {}),
            product.id,
            result.metadata.generation_time_ms,
        )
        if config.mode is not GenerationMode.MANUAL:
            await self._record(result, config)
        return result

    async def history(self, limit: int = 20) -> list[GenerationHistoryEntry]:
        if self.history_store is None:
            return []
        return await self.history_store.recent(limit)

    async def _render_variant(
        self,
        product: Product,
        description: str,
        config: CardGenerationConfig,
        template: Template,
        image: Image.Image,
        stored: list[str],
    ) -> dict[OutputFormat, str]:
        style = config.style_options(template)
        token = uuid.uuid4().hex[:8]
        urls: dict[OutputFormat, str] = {}
        for fmt in config.output_formats:
            data = self.renderer.render(product, description, style, image, fmt)
            filename = f"{product.id}-{template.value}-{token}.{EXTENSIONS[fmt]}"
            urls[fmt] = await self.blob_store.put_blob(data, filename)
            stored.append(urls[fmt])
        return urls

    async def _discard(self, urls: list[str]) -> None:
        """Best-effort removal of artifacts from a generation that failed part way."""
        for url in urls:
            try:
                await self.blob_store.delete_blob(url)
            except Exception as exc:
                logger.warning("Could not delete orphaned artifact %s: %s", url, exc)

    def _metadata(
        self, started: float, config: CardGenerationConfig, secondary: Template | None
    ) -> GenerationMetadata:
        return GenerationMetadata(
            generation_time_ms=int((time.perf_counter() - started) * 1000),
            mode=config.mode,
            template=config.template,
            secondary_template=secondary,
        )

    async def _record(self, result: CardGenerationResult, config: CardGenerationConfig) -> None:
        if self.history_store is None or result.product is None:
            return
        entry = GenerationHistoryEntry(
            id=uuid.uuid4().hex,
            product_id=result.product.id,
            product_name=result.product.name,
            timestamp=now_in_tz(),
            mode=config.mode,
            template=config.template,
            card_urls=result.card_urls,
            schedule_id=config.schedule_id,
        )
        try:
            await self.history_store.append(entry)
        except StorageError as exc:
            logger.warning("Could not record generation history for %s: %s", result.product.id, exc)
