from unittest.mock import AsyncMock

import pytest

from megaverse.concurrency.pool import ConcurrencyPool
from megaverse.concurrency.rate_limiter import RateLimiter
from megaverse.domain.grid import CellType, EntityKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGridService:
    """In-memory grid service. ``failures`` maps (action, row, column) to
    exceptions raised on successive calls; ``always_fail`` raises every time."""

    def __init__(self, goal, current=None):
        self.goal = [list(row) for row in goal]
        if current is None:
            current = [[None for _ in row] for row in goal]
        self.current = [list(row) for row in current]
        self.failures: dict[tuple[str, int, int], list[Exception]] = {}
        self.always_fail: dict[tuple[str, int, int], Exception] = {}
        self.calls: list[tuple[str, str, int, int]] = []

    async def get_goal_map(self):
        return [list(row) for row in self.goal]

    async def get_current_map(self):
        return [list(row) for row in self.current]

    async def create_entity(self, kind: EntityKind, row: int, column: int, **attrs: str) -> None:
        self.calls.append(("create", kind.value, row, column))
        self._maybe_fail("create", row, column)
        self.current[row][column] = {"type": CellType[kind.name].value, **attrs}

    async def delete_entity(self, kind: EntityKind, row: int, column: int) -> None:
        self.calls.append(("delete", kind.value, row, column))
        self._maybe_fail("delete", row, column)
        self.current[row][column] = None

    def _maybe_fail(self, action: str, row: int, column: int) -> None:
        key = (action, row, column)
        if key in self.always_fail:
            raise self.always_fail[key]
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def instant_sleep():
    """Awaitable stand-in for asyncio.sleep that records delays and returns at once."""
    return AsyncMock(return_value=None)


@pytest.fixture
def fast_pool():
    """Pool whose limiters never actually wait."""
    return ConcurrencyPool(
        limiter_factory=lambda n: RateLimiter.for_workers(n, sleep=AsyncMock(return_value=None))
    )


@pytest.fixture
def grid_service():
    return FakeGridService


@pytest.fixture
def sample_goal():
    return [
        ["SPACE", "POLYANET", "SPACE"],
        ["RED_SOLOON", "SPACE", "UP_COMETH"],
        ["SPACE", "POLYANET", "SPACE"],
    ]
