"""Token-bucket rate limiter pacing calls to the grid service."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_SLOWDOWN = 0.8


class RateLimiter:
    """Single token bucket, refilled continuously at ``tokens_per_second``.

    A caller that finds the bucket empty sleeps for the time one token takes
    to refill and then takes it without looking again. Several callers
    waiting at once can drive the balance below zero; refill only caps it
    at ``max_tokens``, so later callers wait off the debt.
    """

    def __init__(
        self,
        max_tokens: float = 10,
        tokens_per_second: float = 2.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_tokens <= 0 or tokens_per_second <= 0:
            raise ValueError("max_tokens and tokens_per_second must be positive")
        self._max_tokens = float(max_tokens)
        self._rate = float(tokens_per_second)
        self._tokens = float(max_tokens)
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()

        # Stats
        self._total_requests = 0
        self._total_wait_seconds = 0.0

    @classmethod
    def for_workers(cls, workers: int, **kwargs: object) -> RateLimiter:
        """Bucket sized for ``workers`` parallel callers: 2 per worker, 0.5/s each."""
        return cls(max_tokens=2 * workers, tokens_per_second=0.5 * workers, **kwargs)  # type: ignore[arg-type]

    @property
    def tokens(self) -> float:
        return self._tokens

    @property
    def rate(self) -> float:
        return self._rate

    async def acquire(self) -> float:
        """Wait for a token and consume it.

        Returns the time spent waiting (seconds).
        """
        self._refill()
        self._total_requests += 1

        if self._tokens >= 1:
            self._tokens -= 1
            return 0.0

        # Round up to whole milliseconds so we never wake a hair too early
        wait = math.ceil((1 - self._tokens) / self._rate * 1000) / 1000
        self._total_wait_seconds += wait
        await self._sleep(wait)
        self._tokens -= 1
        return wait

    def adjust_rate(self, factor: float = DEFAULT_SLOWDOWN) -> None:
        """Permanently scale the refill rate, e.g. 0.8 after a 429."""
        self._rate *= factor
        logger.info("Slowing down: %.2f req/sec", self._rate)

    @property
    def stats(self) -> dict:
        """Return current rate limiter statistics."""
        return {
            "tokens_available": self._tokens,
            "tokens_per_second": self._rate,
            "total_requests": self._total_requests,
            "total_wait_seconds": self._total_wait_seconds,
        }

    def _refill(self) -> None:
        """Refill the bucket based on elapsed time."""
        now = self._clock()
        elapsed = now - self._last_refill
        self._last_refill = now
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._rate)
