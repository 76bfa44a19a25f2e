"""Bounded async worker pool with settled results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from megaverse.concurrency.rate_limiter import RateLimiter
from megaverse.errors.retry import is_rate_limited
from megaverse.types import SettledResult, Task

logger = logging.getLogger(__name__)


class ConcurrencyPool:
    """Runs tasks on a fixed number of workers sharing one cursor.

    Each worker claims the next unclaimed index, waits for a rate-limiter
    token, then runs the task. Results land at the task's original index, so
    the returned list lines up with the input whatever order tasks finish in.
    A failing task is recorded as rejected and the worker moves on.
    """

    def __init__(
        self,
        limiter_factory: Callable[[int], RateLimiter] = RateLimiter.for_workers,
    ) -> None:
        self._limiter_factory = limiter_factory

    async def run(self, tasks: Sequence[Task], concurrency: int) -> list[SettledResult]:
        """Execute ``tasks`` with ``concurrency`` workers.

        Returns one SettledResult per task, in input order.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if not tasks:
            return []

        limiter = self._limiter_factory(concurrency)
        results: list[SettledResult | None] = [None] * len(tasks)
        cursor = 0

        async def worker() -> None:
            nonlocal cursor
            while cursor < len(tasks):
                index = cursor
                cursor += 1
                try:
                    await limiter.acquire()
                    value = await tasks[index]()
                except Exception as exc:
                    results[index] = SettledResult.rejected(exc)
                    logger.debug("Task %d failed: %s", index, exc)
                    if is_rate_limited(exc):
                        limiter.adjust_rate()
                else:
                    results[index] = SettledResult.fulfilled(value)

        await asyncio.gather(*(worker() for _ in range(concurrency)))
        return results  # type: ignore[return-value]
