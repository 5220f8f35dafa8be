import io
from decimal import Decimal

import pendulum
import pytest
from PIL import Image
from sqlalchemy import create_engine

from cardstudio.db.migrate import run_migrations
from cardstudio.describe.gemini import GenerationParams
from cardstudio.errors import ImageLoadError, TextServiceError
from cardstudio.models import Product
from cardstudio.store.kv import SqlKeyValueStore

TZ = "America/Sao_Paulo"


@pytest.fixture()
def engine():
    engine = create_engine("sqlite:///:memory:", future=True)
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def kv(engine):
    return SqlKeyValueStore(engine)


@pytest.fixture()
def product():
    return Product(
        itemId="22950197311",
        productName="Wireless Bluetooth Earbuds with Charging Case and Noise Reduction",
        price=Decimal("89.90"),
        priceDiscountRate=40,
        sales=15230,
        ratingStar=4.8,
        shopName="AudioMax Official",
        freeShipping=True,
        imageUrl="https://images.example.com/earbuds.jpg",
    )


@pytest.fixture()
def red_image():
    return Image.new("RGBA", (60, 120), (255, 0, 0, 255))


@pytest.fixture()
def png_bytes(red_image):
    buffer = io.BytesIO()
    red_image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def now():
    # Tuesday
    return pendulum.datetime(2024, 5, 14, 10, 0, tz=TZ)


class FakeImageLoader:
    def __init__(self, image=None, error=None):
        self.image = image or Image.new("RGBA", (60, 120), (255, 0, 0, 255))
        self.error = error
        self.urls = []

    async def load(self, url):
        self.urls.append(url)
        if self.error:
            raise ImageLoadError(self.error)
        return self.image


class MemoryBlobStore:
    def __init__(self):
        self.blobs = {}

    async def put_blob(self, data, filename):
        url = f"memory://{filename}"
        self.blobs[url] = data
        return url

    async def delete_blob(self, url):
        self.blobs.pop(url, None)


class FakeTextService:
    def __init__(self, reply="Generated caption", fail=False):
        self.reply = reply
        self.fail = fail
        self.calls = []

    async def generate(self, prompt, params: GenerationParams):
        self.calls.append((prompt, params))
        if self.fail:
            raise TextServiceError("all down", {"v1beta/gemini-2.0-flash": "HTTP 500"})
        return self.reply


@pytest.fixture()
def image_loader():
    return FakeImageLoader()


@pytest.fixture()
def blob_store():
    return MemoryBlobStore()


@pytest.fixture()
def text_service():
    return FakeTextService()


@pytest.fixture()
def failing_image_loader():
    return FakeImageLoader(error="Could not load image https://images.example.com/earbuds.jpg: 404")


@pytest.fixture()
def failing_text_service():
    return FakeTextService(fail=True)
