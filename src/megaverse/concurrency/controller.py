"""Feedback loop that grows or shrinks the worker count from throttling signals."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ConcurrencyController:
    """Owns the current concurrency level and the throttled-call counter.

    ``adjust()`` runs on a periodic tick (after ``start()``) and can also be
    triggered directly. A quiet window grows concurrency by one up to
    ``max_concurrency``; a window with ``k`` throttled calls shrinks it by
    ``min(k, concurrency - 1)``. Every adjustment resets the counter, so two
    triggers never act on the same errors.
    """

    def __init__(
        self,
        initial: int = 3,
        max_concurrency: int = 8,
        interval: float = 10.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if not 1 <= initial <= max_concurrency:
            raise ValueError(f"initial concurrency must be in [1, {max_concurrency}], got {initial}")
        self._concurrency = initial
        self._max_concurrency = max_concurrency
        self._interval = interval
        self._sleep = sleep
        self._throttled = 0
        self._task: asyncio.Task | None = None

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def throttled(self) -> int:
        """Throttled calls seen since the last adjustment."""
        return self._throttled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def report_throttled(self, count: int = 1) -> None:
        if count > 0:
            self._throttled += count

    def adjust(self) -> int:
        """Apply one feedback step and return the new concurrency."""
        hits = self._throttled
        if hits == 0:
            self._concurrency = min(self._concurrency + 1, self._max_concurrency)
        else:
            self._concurrency -= min(hits, self._concurrency - 1)
        self._throttled = 0
        logger.info("Concurrency now %d (rate-limit hits: %d)", self._concurrency, hits)
        return self._concurrency

    def start(self) -> None:
        """Start the periodic tick. Requires a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._tick_loop())

    async def stop(self) -> None:
        """Cancel the periodic tick. Safe to call more than once."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def __aenter__(self) -> ConcurrencyController:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _tick_loop(self) -> None:
        while True:
            await self._sleep(self._interval)
            self.adjust()
