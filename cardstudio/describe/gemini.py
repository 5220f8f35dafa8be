"""Generative text client for the Gemini REST API.

Each configured model is wrapped in a ``GeminiAttempt``; ``TextServiceCascade``
tries them in order and collects every failure before giving up.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import httpx

from cardstudio.errors import TextServiceError
from cardstudio.utils.rate_limit import WindowRateLimiter

logger = logging.getLogger(__name__)

API_BASE = os.environ.get("GEMINI_API_BASE", "https://generativelanguage.googleapis.com")
DEFAULT_MODELS = "v1beta/gemini-2.0-flash,v1beta/gemini-1.5-flash,v1/gemini-1.0-pro"
ACQUIRE_TIMEOUT = os.environ.get("TEXT_RATE_LIMIT_TIMEOUT")


@dataclass(slots=True, frozen=True)
class GenerationParams:
    temperature: float = 0.8
    max_tokens: int = 300
    top_k: int = 40
    top_p: float = 0.95


@dataclass(slots=True, frozen=True)
class GeminiConfiguration:
    model: str
    api_version: str = "v1beta"

    @property
    def name(self) -> str:
        return f"{self.api_version}/{self.model}"

    @classmethod
    def parse(cls, value: str) -> "GeminiConfiguration":
        version, _, model = value.strip().rpartition("/")
        return cls(model=model, api_version=version or "v1beta")


def parse_models(value: str | None = None) -> list[GeminiConfiguration]:
    raw = value if value is not None else os.environ.get("GEMINI_MODELS", DEFAULT_MODELS)
    return [GeminiConfiguration.parse(item) for item in raw.split(",") if item.strip()]


class TextService(Protocol):
    async def generate(self, prompt: str, params: GenerationParams) -> str: ...


class Attempt(Protocol):
    name: str

    async def attempt(self, prompt: str, params: GenerationParams) -> str: ...


class GeminiAttempt:
    def __init__(
        self,
        config: GeminiConfiguration,
        *,
        api_key: str,
        session: httpx.AsyncClient,
        base_url: str = API_BASE,
    ) -> None:
        self.config = config
        self.name = config.name
        self._api_key = api_key
        self._session = session
        self._base_url = base_url.rstrip("/")

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self.config.api_version}/models/{self.config.model}:generateContent"

    async def attempt(self, prompt: str, params: GenerationParams) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": params.temperature,
                "maxOutputTokens": params.max_tokens,
                "topK": params.top_k,
                "topP": params.top_p,
            },
        }
        try:
            response = await self._session.post(self.url, params={"key": self._api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise TextServiceError(f"{self.name}: transport error {exc}") from exc
        if response.is_error:
            raise TextServiceError(f"{self.name}: HTTP {response.status_code} {_error_message(response)}")
        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TextServiceError(f"{self.name}: unexpected response format") from exc
        if not isinstance(text, str) or not text.strip():
            raise TextServiceError(f"{self.name}: empty response")
        return text.strip()


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.reason_phrase


class TextServiceCascade:
    """Try each attempt in order, taking one rate-limit slot per attempt.

    Attempts make exactly one request each; the cascade is the retry policy.
    """

    def __init__(
        self,
        attempts: Sequence[Attempt],
        *,
        rate_limiter: WindowRateLimiter | None = None,
        acquire_timeout: float | None = None,
    ) -> None:
        self.attempts = list(attempts)
        self.rate_limiter = rate_limiter
        self.acquire_timeout = acquire_timeout

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        errors: dict[str, str] = {}
        for attempt in self.attempts:
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire(timeout=self.acquire_timeout)
            try:
                return await attempt.attempt(prompt, params)
            except TextServiceError as exc:
                logger.warning("Text configuration %s failed: %s", attempt.name, exc)
                errors[attempt.name] = str(exc)
        raise TextServiceError(f"All {len(self.attempts)} text configurations failed", errors)


def build_cascade(
    *,
    api_key: str | None = None,
    models: str | None = None,
    rate_limiter: WindowRateLimiter | None = None,
    session: httpx.AsyncClient | None = None,
    acquire_timeout: float | None = None,
) -> TextServiceCascade | None:
    """Cascade over the configured Gemini models, or None without an API key."""
    api_key = api_key or os.environ.get("GEMINI_API_KEY")
    if not api_key:
        logger.warning("GEMINI_API_KEY not set; descriptions will use the fallback template")
        return None
    session = session or httpx.AsyncClient(timeout=30.0)
    attempts = [GeminiAttempt(config, api_key=api_key, session=session) for config in parse_models(models)]
    if acquire_timeout is None and ACQUIRE_TIMEOUT:
        acquire_timeout = float(ACQUIRE_TIMEOUT)
    return TextServiceCascade(attempts, rate_limiter=rate_limiter, acquire_timeout=acquire_timeout)
