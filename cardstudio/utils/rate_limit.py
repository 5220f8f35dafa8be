"""Rolling-window rate limiting for outbound service calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(slots=True)
class RateWindow:
    window_start: float
    call_count: int = 0


class WindowRateLimiter:
    """At most ``max_calls`` acquisitions per ``window`` seconds.

    When the window is exhausted ``acquire`` sleeps until it resets instead of
    failing. Callers sharing an instance are serialized through its lock.
    """

    def __init__(
        self,
        *,
        max_calls: int = 10,
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.state = RateWindow(window_start=clock())

    async def acquire(self, *, timeout: float | None = None) -> None:
        async with self._lock:
            now = self._clock()
            if now - self.state.window_start > self.window:
                self._reset(now)
            if self.state.call_count >= self.max_calls:
                wait = max(0.0, self.window - (now - self.state.window_start))
                if timeout is not None and wait > timeout:
                    raise TimeoutError(f"Rate limit window resets in {wait:.1f}s, over the {timeout:.1f}s deadline")
                logger.info("Rate limit of %s calls reached; waiting %.1fs", self.max_calls, wait)
                await self._sleep(wait)
                self._reset(self._clock())
            self.state.call_count += 1

    def _reset(self, now: float) -> None:
        self.state.window_start = now
        self.state.call_count = 0
