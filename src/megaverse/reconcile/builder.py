"""Orchestrator: drives the grid toward its goal through the adaptive engine."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from pydantic import BaseModel, Field

from megaverse.api.client import GridService
from megaverse.concurrency.batching import BatchScheduler
from megaverse.concurrency.controller import ConcurrencyController
from megaverse.concurrency.pool import ConcurrencyPool
from megaverse.config.schema import ReconcilerSettings
from megaverse.domain.grid import CurrentGrid, GoalGrid
from megaverse.errors.exceptions import ReconciliationError
from megaverse.errors.retry import is_rate_limited, retry
from megaverse.reconcile.planner import (
    Action,
    GridOperation,
    plan_clean,
    plan_sync,
    to_tasks,
)
from megaverse.types import RetryPolicy, SettledResult, Task
from megaverse.utils.progress import ProgressLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_SAMPLE_ERRORS = 5


class ReconcileReport(BaseModel):
    """What a build or clean run did."""

    action: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    sample_errors: list[str] = Field(default_factory=list)
    verification_passes: int = 0
    remaining: int = 0

    @property
    def converged(self) -> bool:
        return self.remaining == 0

    def record(self, results: Sequence[SettledResult]) -> None:
        for result in results:
            self.attempted += 1
            if result.ok:
                self.succeeded += 1
                continue
            self.failed += 1
            if len(self.sample_errors) < _MAX_SAMPLE_ERRORS:
                self.sample_errors.append(str(result.reason))


class MegaverseBuilder:
    """Reconciles one candidate's grid.

    Owns the concurrency controller; use as an async context manager (or call
    ``start()``/``stop()``) so the periodic tick never outlives the run.
    """

    def __init__(
        self,
        service: GridService,
        settings: ReconcilerSettings | None = None,
        *,
        pool: ConcurrencyPool | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._settings = settings or ReconcilerSettings()
        self._sleep = sleep
        self._controller = ConcurrencyController(
            initial=self._settings.initial_concurrency,
            max_concurrency=self._settings.max_concurrency,
            interval=self._settings.adjust_interval,
        )
        self._pool = pool or ConcurrencyPool()
        self._scheduler = BatchScheduler(
            self._pool,
            self._controller,
            batch_size=self._settings.batch_size,
            batch_delay=self._settings.batch_delay,
            sleep=sleep,
        )

    @property
    def controller(self) -> ConcurrencyController:
        return self._controller

    @property
    def settings(self) -> ReconcilerSettings:
        return self._settings

    # --- lifecycle ---

    def start(self) -> None:
        self._controller.start()

    async def stop(self) -> None:
        await self._controller.stop()

    async def __aenter__(self) -> MegaverseBuilder:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # --- public API ---

    async def plan(self) -> list[GridOperation]:
        """Operations a build would issue right now (dry run)."""
        goal, current = await self._fetch_maps()
        return plan_sync(goal, current)

    async def clean(self, strict: bool = False) -> ReconcileReport:
        """Delete every object on the grid."""
        report = ReconcileReport(action="clean")
        todo = plan_clean(await self._read(self._service.get_current_map))
        if not todo:
            logger.info("Universe already empty.")
            return report

        logger.info("Deleting %d objects...", len(todo))
        report.record(await self._run_with_progress(self._tasks(todo), "deleted"))

        async def leftovers() -> list[GridOperation]:
            return plan_clean(await self._read(self._service.get_current_map))

        return await self._verify(report, leftovers, strict)

    async def build(self, strict: bool = False) -> ReconcileReport:
        """Delete wrong objects, create missing ones, then verify."""
        report = ReconcileReport(action="build")
        ops = plan_sync(*await self._fetch_maps())
        if not ops:
            logger.info("Map already matches goal.")
            return report

        deletes = [op for op in ops if op.action == Action.DELETE]
        creates = [op for op in ops if op.action == Action.CREATE]
        if deletes:
            logger.info("Removing %d misplaced objects...", len(deletes))
            report.record(await self._run_with_progress(self._tasks(deletes), "deleted"))
        if creates:
            logger.info("Creating %d objects...", len(creates))
            report.record(await self._run_with_progress(self._tasks(creates), "created"))

        async def leftovers() -> list[GridOperation]:
            return plan_sync(*await self._fetch_maps())

        return await self._verify(report, leftovers, strict)

    # --- helpers ---

    async def _fetch_maps(self) -> tuple[GoalGrid, CurrentGrid]:
        goal, current = await asyncio.gather(
            self._read(self._service.get_goal_map),
            self._read(self._service.get_current_map),
        )
        return goal, current

    async def _read(self, fetch: Callable[[], Awaitable[T]]) -> T:
        """Map reads share the write tasks' retry policy."""
        return await retry(fetch, self._retry_policy(), sleep=self._sleep)

    async def _verify(
        self,
        report: ReconcileReport,
        leftovers: Callable[[], Awaitable[list[GridOperation]]],
        strict: bool,
    ) -> ReconcileReport:
        """Re-check the grid and sweep what is left, one request at a time."""
        passes = self._settings.cleanup_passes
        remaining = await leftovers()
        while remaining and report.verification_passes < passes:
            report.verification_passes += 1
            logger.warning(
                "%d operations still pending (attempt %d/%d). Retrying...",
                len(remaining),
                report.verification_passes,
                passes,
            )
            report.record(await self._pool.run(self._tasks(remaining), 1))
            remaining = await leftovers()

        report.remaining = len(remaining)
        if remaining:
            logger.error(
                "Gave up after %d verification passes; %d operations still pending.",
                report.verification_passes,
                len(remaining),
            )
            if strict:
                raise ReconciliationError(
                    f"{report.action} did not converge: {len(remaining)} operations pending",
                    remaining=len(remaining),
                )
        else:
            logger.info("Map matches the %s target.", report.action)
        return report

    def _tasks(self, ops: list[GridOperation]) -> list[Task]:
        return to_tasks(ops, self._service, self._retry_policy(), sleep=self._sleep)

    def _retry_policy(self) -> RetryPolicy:
        s = self._settings
        return RetryPolicy(
            max_retries=s.max_retries,
            factor=s.backoff_factor,
            min_delay=s.min_delay,
            max_delay=s.max_delay,
            jitter=s.jitter,
            on_retry=self._on_retry,
        )

    def _on_retry(self, exc: BaseException, attempt: int, delay: float) -> None:
        if is_rate_limited(exc):
            self._controller.report_throttled()

    async def _run_with_progress(self, tasks: list[Task], label: str) -> list[SettledResult]:
        progress = ProgressLogger(label, len(tasks), self._settings.progress_interval)

        async def tracked(task: Task) -> object:
            try:
                return await task()
            finally:
                progress()

        return await self._scheduler.process([functools.partial(tracked, t) for t in tasks])
