import pytest

from cardstudio.describe.provider import DescriptionProvider
from cardstudio.errors import StorageError
from cardstudio.logic.generation import CardGenerator, alternate_template
from cardstudio.models import (
    CardGenerationConfig,
    GenerationHistoryEntry,
    GenerationMode,
    OutputFormat,
    Template,
)
from cardstudio.render.card import CardRenderer
from cardstudio.store.records import HistoryStore


class SmallRenderer(CardRenderer):
    def render(self, product, description, style, image, fmt=OutputFormat.PNG):
        self.last_style = style
        return f"{style.template.value}:{fmt.value}".encode()


class FlakyBlobStore:
    def __init__(self, fail_on, fail_delete=False):
        self.fail_on = fail_on
        self.fail_delete = fail_delete
        self.puts = 0
        self.blobs = {}
        self.deleted = []

    async def put_blob(self, data, filename):
        self.puts += 1
        if self.puts == self.fail_on:
            raise StorageError("bucket unavailable")
        url = f"memory://{filename}"
        self.blobs[url] = data
        return url

    async def delete_blob(self, url):
        self.deleted.append(url)
        if self.fail_delete:
            raise StorageError("delete refused")
        self.blobs.pop(url, None)


@pytest.fixture()
def history(kv):
    return HistoryStore(kv, "generation_history", GenerationHistoryEntry)


def build(provider, image_loader, blob_store, history=None, renderer=None):
    return CardGenerator(provider, renderer or SmallRenderer(), image_loader, blob_store, history)


def test_alternate_template_cycle():
    template = Template.MODERN
    seen = []
    for _ in range(5):
        template = alternate_template(template)
        seen.append(template)
    assert seen == [Template.ELEGANT, Template.BOLD, Template.MINIMAL, Template.VIBRANT, Template.MODERN]


@pytest.mark.asyncio
async def test_generate_without_ai_never_calls_service(product, text_service, image_loader, blob_store):
    generator = build(DescriptionProvider(text_service), image_loader, blob_store)
    result = await generator.generate_cards(product, CardGenerationConfig(use_ai=False))
    assert result.success
    assert text_service.calls == []
    assert result.description
    assert set(result.card_urls) == {OutputFormat.PNG, OutputFormat.JPEG}
    assert set(result.secondary_card_urls) == {OutputFormat.PNG, OutputFormat.JPEG}
    assert result.metadata.template is Template.MODERN
    assert result.metadata.secondary_template is Template.ELEGANT
    assert sorted(blob_store.blobs.values()) == [b"elegant:jpeg", b"elegant:png", b"modern:jpeg", b"modern:png"]
    assert image_loader.urls == [product.image_url]


@pytest.mark.asyncio
async def test_single_variant_single_format(product, image_loader, blob_store):
    generator = build(DescriptionProvider(None), image_loader, blob_store)
    config = CardGenerationConfig(
        template=Template.VIBRANT, include_second_variation=False, output_formats=[OutputFormat.JPEG]
    )
    result = await generator.generate_cards(product, config)
    assert list(result.card_urls) == [OutputFormat.JPEG]
    assert result.card_urls[OutputFormat.JPEG].endswith(".jpg")
    assert result.secondary_card_urls is None
    assert result.metadata.secondary_template is None


@pytest.mark.asyncio
async def test_badges_follow_config(product, image_loader, blob_store):
    renderer = SmallRenderer()
    generator = build(DescriptionProvider(None), image_loader, blob_store, renderer=renderer)
    config = CardGenerationConfig(show_badges=False, include_second_variation=False, output_formats=["png"])
    await generator.generate_cards(product, config)
    style = renderer.last_style
    assert not (style.show_rating or style.show_sales or style.show_shipping or style.show_discount)


@pytest.mark.asyncio
async def test_image_failure_becomes_failed_result(product, failing_image_loader, blob_store):
    generator = build(DescriptionProvider(None), failing_image_loader, blob_store)
    result = await generator.generate_cards(product, CardGenerationConfig())
    assert not result.success
    assert "404" in result.error
    assert result.card_urls == {}
    assert result.secondary_card_urls is None
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_manual_generation_not_recorded(product, image_loader, blob_store, history):
    generator = build(DescriptionProvider(None), image_loader, blob_store, history)
    await generator.generate_cards(product, CardGenerationConfig(mode=GenerationMode.MANUAL))
    assert await generator.history() == []


@pytest.mark.asyncio
async def test_quick_and_automated_generation_recorded(product, image_loader, blob_store, history):
    generator = build(DescriptionProvider(None), image_loader, blob_store, history)
    await generator.generate_cards(product, CardGenerationConfig(mode=GenerationMode.QUICK))
    await generator.generate_cards(
        product, CardGenerationConfig(mode=GenerationMode.AUTOMATED, schedule_id="sched-1", template="bold")
    )
    entries = await generator.history()
    assert [entry.mode for entry in entries] == [GenerationMode.AUTOMATED, GenerationMode.QUICK]
    assert entries[0].schedule_id == "sched-1"
    assert entries[0].template is Template.BOLD
    assert entries[0].product_id == product.id
    assert set(entries[0].card_urls) == {OutputFormat.PNG, OutputFormat.JPEG}


@pytest.mark.asyncio
async def test_real_renderer_end_to_end(product, image_loader, blob_store):
    generator = CardGenerator(DescriptionProvider(None), CardRenderer(), image_loader, blob_store)
    config = CardGenerationConfig(include_second_variation=False, output_formats=["png"])
    result = await generator.generate_cards(product, config)
    assert result.success
    assert blob_store.blobs[result.card_urls[OutputFormat.PNG]].startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_failed_upload_removes_stored_artifacts(product, image_loader):
    store = FlakyBlobStore(fail_on=3)
    generator = build(DescriptionProvider(None), image_loader, store)
    result = await generator.generate_cards(product, CardGenerationConfig(use_ai=False))
    assert not result.success
    assert result.card_urls == {}
    assert "bucket unavailable" in result.error
    assert len(store.deleted) == 2
    assert store.blobs == {}


@pytest.mark.asyncio
async def test_cleanup_failure_keeps_failed_result(product, image_loader):
    store = FlakyBlobStore(fail_on=2, fail_delete=True)
    generator = build(DescriptionProvider(None), image_loader, store)
    result = await generator.generate_cards(product, CardGenerationConfig(use_ai=False))
    assert not result.success
    assert "bucket unavailable" in result.error
    assert len(store.deleted) == 1
