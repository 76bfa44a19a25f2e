"""Custom exception hierarchy for megaverse."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from megaverse.types import ErrorKind


class MegaverseError(Exception):
    """Base exception for all megaverse errors."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message


class ApiError(MegaverseError):
    """A call to the grid service failed.

    The ``kind`` is decided once, where the HTTP response is inspected, so
    callers never have to pattern-match on the message.
    """

    def __init__(
        self,
        message: str = "",
        kind: ErrorKind = ErrorKind.UNKNOWN,
        http_status: int | None = None,
        headers: Mapping[str, str] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.http_status = http_status
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        return self.kind == ErrorKind.RATE_LIMITED


class TransientError(ApiError):
    """Transient error — safe to retry with backoff.

    Examples: 429 rate limit, 500/502/503 server error, dropped connection.
    """

    def __init__(
        self,
        message: str = "",
        kind: ErrorKind = ErrorKind.SERVER_ERROR,
        http_status: int | None = None,
        headers: Mapping[str, str] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message, kind=kind, http_status=http_status, headers=headers, retry_after=retry_after
        )


class RateLimitError(TransientError):
    """HTTP 429 from the grid service."""

    def __init__(
        self,
        message: str = "",
        headers: Mapping[str, str] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message,
            kind=ErrorKind.RATE_LIMITED,
            http_status=429,
            headers=headers,
            retry_after=retry_after,
        )


class TerminalError(ApiError):
    """Terminal error — fail fast.

    Examples: 400 bad coordinates, 404 unknown candidate, 401 auth failure.
    """

    def __init__(
        self,
        message: str = "",
        kind: ErrorKind = ErrorKind.CLIENT_ERROR,
        http_status: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, kind=kind, http_status=http_status, headers=headers)


class ConfigError(MegaverseError):
    """Invalid or missing configuration."""


class ReconciliationError(MegaverseError):
    """The grid still differs from its goal after every verification pass."""

    def __init__(self, message: str = "", remaining: int = 0) -> None:
        super().__init__(message)
        self.remaining = remaining
