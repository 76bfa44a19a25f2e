"""Tests for the reconciliation orchestrator."""

import pytest

from megaverse.config.schema import ReconcilerSettings
from megaverse.errors.exceptions import (
    RateLimitError,
    ReconciliationError,
    TerminalError,
    TransientError,
)
from megaverse.reconcile.builder import MegaverseBuilder, ReconcileReport
from megaverse.reconcile.planner import Action
from megaverse.types import SettledResult


@pytest.fixture
def settings():
    return ReconcilerSettings(
        candidate_id="test-candidate",
        batch_size=2,
        batch_delay=0.5,
        adjust_interval=3600,
        cleanup_passes=2,
        jitter=False,
    )


@pytest.fixture
def make_builder(settings, fast_pool, instant_sleep):
    def factory(service, **overrides):
        s = settings.model_copy(update=overrides)
        return MegaverseBuilder(service, s, pool=fast_pool, sleep=instant_sleep)

    return factory


class TestBuild:
    async def test_builds_from_empty(self, grid_service, sample_goal, make_builder):
        service = grid_service(sample_goal)
        async with make_builder(service) as builder:
            report = await builder.build()

        assert report.converged
        assert report.attempted == 4
        assert report.succeeded == 4
        assert report.failed == 0
        assert report.verification_passes == 0
        assert all(call[0] == "create" for call in service.calls)

    async def test_nothing_to_do(self, grid_service, make_builder):
        service = grid_service([["POLYANET"]], [[{"type": 0}]])
        async with make_builder(service) as builder:
            report = await builder.build()

        assert report.attempted == 0
        assert report.converged
        assert service.calls == []

    async def test_deletes_before_creates(self, grid_service, make_builder):
        goal = [["RED_SOLOON", "SPACE"], ["SPACE", "DOWN_COMETH"]]
        current = [[{"type": 1, "color": "blue"}, {"type": 0}], [None, None]]
        service = grid_service(goal, current)

        async with make_builder(service) as builder:
            report = await builder.build()

        actions = [call[0] for call in service.calls]
        assert actions == ["delete", "delete", "create", "create"]
        assert report.converged

    async def test_pauses_between_batches(self, grid_service, make_builder, instant_sleep):
        goal = [["POLYANET"] * 5]
        service = grid_service(goal)

        async with make_builder(service) as builder:
            await builder.build()

        # 5 creates in batches of 2 -> 3 batches, 2 pauses
        assert [c.args[0] for c in instant_sleep.await_args_list] == [0.5, 0.5]

    async def test_verification_sweeps_leftovers(self, grid_service, make_builder):
        service = grid_service([["POLYANET", "POLYANET"]])
        service.failures[("create", 0, 1)] = [TerminalError("POST polyanets failed (400): busy")]

        async with make_builder(service) as builder:
            report = await builder.build()

        assert report.failed == 1
        assert report.verification_passes == 1
        assert report.converged
        assert report.sample_errors == ["POST polyanets failed (400): busy"]

    async def test_gives_up_after_passes(self, grid_service, make_builder):
        service = grid_service([["POLYANET"]])
        service.always_fail[("create", 0, 0)] = TerminalError("POST polyanets failed (400): no")

        async with make_builder(service) as builder:
            report = await builder.build()

        assert not report.converged
        assert report.remaining == 1
        assert report.verification_passes == 2
        assert report.failed == 3

    async def test_strict_raises(self, grid_service, make_builder):
        service = grid_service([["POLYANET"]])
        service.always_fail[("create", 0, 0)] = TerminalError("POST polyanets failed (400): no")

        async with make_builder(service) as builder:
            with pytest.raises(ReconciliationError) as exc_info:
                await builder.build(strict=True)

        assert exc_info.value.remaining == 1

    async def test_retried_rate_limits_reported(self, grid_service, make_builder):
        service = grid_service([["POLYANET"]])
        service.failures[("create", 0, 0)] = [
            RateLimitError("POST polyanets failed (429): slow"),
            RateLimitError("POST polyanets failed (429): slow"),
        ]

        async with make_builder(service) as builder:
            report = await builder.build()
            assert builder.controller.throttled == 2

        assert report.converged
        assert report.failed == 0

    async def test_escaped_rate_limits_shrink_concurrency(self, grid_service, make_builder):
        service = grid_service([["POLYANET", "POLYANET", "POLYANET"]])
        service.always_fail[("create", 0, 0)] = RateLimitError("POST polyanets failed (429): slow")

        async with make_builder(service, max_retries=0, cleanup_passes=0) as builder:
            await builder.build()
            assert builder.controller.concurrency == 2

    async def test_progress_logged(self, grid_service, sample_goal, make_builder, caplog):
        service = grid_service(sample_goal)
        with caplog.at_level("INFO", logger="megaverse.utils.progress"):
            async with make_builder(service, progress_interval=2) as builder:
                await builder.build()

        assert "created: 2/4 (50%)" in caplog.text
        assert "created: 4/4 (100%)" in caplog.text

    async def test_progress_counts_failed_tasks(self, grid_service, make_builder, caplog):
        service = grid_service([["POLYANET", "POLYANET", "POLYANET"]])
        service.always_fail[("create", 0, 1)] = TerminalError("POST polyanets failed (400): no")

        with caplog.at_level("INFO", logger="megaverse.utils.progress"):
            async with make_builder(service, progress_interval=1, cleanup_passes=0) as builder:
                report = await builder.build()

        lines = [r.getMessage() for r in caplog.records if r.name == "megaverse.utils.progress"]
        assert lines == ["created: 1/3 (33%)", "created: 2/3 (67%)", "created: 3/3 (100%)"]
        assert report.failed == 1

    async def test_map_reads_retried(self, grid_service, make_builder, instant_sleep):
        service = grid_service([["POLYANET"]])
        read_current = service.get_current_map
        pending = [RateLimitError("Current map request failed (429): slow")]

        async def flaky_current_map():
            if pending:
                raise pending.pop()
            return await read_current()

        service.get_current_map = flaky_current_map

        async with make_builder(service) as builder:
            report = await builder.build()
            assert builder.controller.throttled == 1

        assert report.converged
        assert instant_sleep.await_count >= 1


class TestClean:
    async def test_removes_everything(self, grid_service, sample_goal, make_builder):
        current = [
            [{"type": 0}, None, {"type": 1, "color": "red"}],
            [None, {"type": 2, "direction": "left"}, None],
            [None, None, None],
        ]
        service = grid_service(sample_goal, current)

        async with make_builder(service) as builder:
            report = await builder.clean()

        assert report.converged
        assert report.succeeded == 3
        assert all(cell is None for row in service.current for cell in row)

    async def test_already_empty(self, grid_service, sample_goal, make_builder):
        service = grid_service(sample_goal)
        async with make_builder(service) as builder:
            report = await builder.clean()

        assert report.attempted == 0
        assert service.calls == []

    async def test_transient_read_failure_retried(self, grid_service, make_builder):
        service = grid_service([["SPACE"]], [[{"type": 0}]])
        read_current = service.get_current_map
        pending = [TransientError("Current map request failed (503): down")]

        async def flaky_current_map():
            if pending:
                raise pending.pop()
            return await read_current()

        service.get_current_map = flaky_current_map

        async with make_builder(service) as builder:
            report = await builder.clean()

        assert report.converged
        assert service.current == [[None]]

    async def test_sweeps_survivors_one_at_a_time(self, grid_service, make_builder, fast_pool):
        service = grid_service([["SPACE", "SPACE"]], [[{"type": 0}, {"type": 0}]])
        service.failures[("delete", 0, 0)] = [TerminalError("DELETE polyanets failed (409): hold on")]

        runs = []
        original = fast_pool.run

        async def spy(tasks, concurrency):
            runs.append((len(tasks), concurrency))
            return await original(tasks, concurrency)

        fast_pool.run = spy
        async with make_builder(service) as builder:
            report = await builder.clean()

        assert runs[-1] == (1, 1)
        assert report.verification_passes == 1
        assert report.converged


class TestPlan:
    async def test_dry_run(self, grid_service, make_builder):
        service = grid_service([["POLYANET", "SPACE"]], [[None, {"type": 0}]])
        builder = make_builder(service)

        ops = await builder.plan()

        assert [op.action for op in ops] == [Action.CREATE, Action.DELETE]
        assert service.calls == []


class TestLifecycle:
    async def test_context_manager_runs_timer(self, grid_service, make_builder):
        builder = make_builder(grid_service([["SPACE"]]))
        async with builder:
            assert builder.controller.running
        assert not builder.controller.running

    async def test_timer_stopped_on_error(self, grid_service, make_builder):
        builder = make_builder(grid_service([["SPACE"]]))
        with pytest.raises(RuntimeError):
            async with builder:
                raise RuntimeError("boom")
        assert not builder.controller.running

    async def test_explicit_start_stop(self, grid_service, make_builder):
        builder = make_builder(grid_service([["SPACE"]]))
        builder.start()
        assert builder.controller.running
        await builder.stop()
        await builder.stop()
        assert not builder.controller.running


class TestReconcileReport:
    def test_record(self):
        report = ReconcileReport(action="build")
        report.record(
            [SettledResult.fulfilled(None)]
            + [SettledResult.rejected(ValueError(f"e{i}")) for i in range(7)]
        )
        assert report.attempted == 8
        assert report.succeeded == 1
        assert report.failed == 7
        assert report.sample_errors == ["e0", "e1", "e2", "e3", "e4"]
