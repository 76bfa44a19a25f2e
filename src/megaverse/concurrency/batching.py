"""Batch scheduler — fixed-size batches through the pool with pauses between them."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from megaverse.concurrency.controller import ConcurrencyController
from megaverse.concurrency.pool import ConcurrencyPool
from megaverse.errors.retry import is_rate_limited
from megaverse.types import SettledResult, Task

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_BATCH_DELAY = 3.0  # seconds


class BatchScheduler:
    """Slices tasks into batches and runs each at the controller's current level.

    Concurrency is read fresh for every batch, so a change made by the
    controller takes effect at the next batch boundary. Throttled rejections
    in a batch are reported to the controller and trigger an immediate
    adjustment before the next batch starts.
    """

    def __init__(
        self,
        pool: ConcurrencyPool,
        controller: ConcurrencyController,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._pool = pool
        self._controller = controller
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._sleep = sleep

    async def process(self, tasks: Sequence[Task]) -> list[SettledResult]:
        """Run all tasks batch by batch. Results keep input order."""
        results: list[SettledResult] = []
        total = len(tasks)

        for start in range(0, total, self._batch_size):
            batch = tasks[start : start + self._batch_size]
            concurrency = self._controller.concurrency
            logger.debug(
                "Batch %d-%d of %d at concurrency %d",
                start + 1,
                start + len(batch),
                total,
                concurrency,
            )
            batch_results = await self._pool.run(batch, concurrency)
            results.extend(batch_results)

            throttled = sum(
                1 for r in batch_results if not r.ok and is_rate_limited(r.reason)
            )
            if throttled:
                self._controller.report_throttled(throttled)
                self._controller.adjust()

            if start + self._batch_size < total:
                await self._sleep(self._batch_delay)

        return results
