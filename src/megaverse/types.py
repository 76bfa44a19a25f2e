"""Shared models for megaverse."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

Task = Callable[[], Awaitable[Any]]

# ── Enums ──


class SettleStatus(StrEnum):
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class ErrorKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


# ── Runtime models ──


@dataclass(slots=True)
class SettledResult(Generic[T]):
    """Outcome of one independently executed task. Never raised further."""

    status: SettleStatus
    value: T | None = None
    reason: BaseException | None = None

    @classmethod
    def fulfilled(cls, value: T) -> SettledResult[T]:
        return cls(status=SettleStatus.FULFILLED, value=value)

    @classmethod
    def rejected(cls, reason: BaseException) -> SettledResult[T]:
        return cls(status=SettleStatus.REJECTED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status == SettleStatus.FULFILLED


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff.

    Delays are in seconds. ``retryable`` decides whether an error is worth
    another attempt; ``on_retry`` is called with ``(error, attempt, delay)``
    right before each backoff sleep.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_retries: int = Field(default=10, ge=0)
    factor: float = Field(default=2.0, gt=0)
    min_delay: float = Field(default=0.1, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: bool = True
    retryable: Callable[[BaseException], bool] | None = None
    on_retry: Callable[[BaseException, int, float], None] | None = None
