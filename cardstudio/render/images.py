"""Product image fetching and decoding."""

from __future__ import annotations

import io
import logging

import httpx
from PIL import Image, UnidentifiedImageError

from cardstudio.errors import ImageLoadError
from cardstudio.utils.retry import retry_async

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into a fully loaded RGBA image."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return image.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageLoadError(f"Undecodable image payload: {exc}") from exc


class ImageLoader:
    def __init__(self, *, session: httpx.AsyncClient | None = None, timeout: float = 20.0) -> None:
        self._session = session or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, headers={"User-Agent": "CardStudio/1.0"}
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def load(self, url: str) -> Image.Image:
        if not url:
            raise ImageLoadError("Product has no image URL")
        try:
            response = await retry_async(self._session.get)(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Image fetch failed for %s: %s", url, exc)
            raise ImageLoadError(f"Could not load image {url}: {exc}") from exc
        return decode_image(response.content)
