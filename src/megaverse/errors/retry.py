"""Retry engine — bounded exponential backoff around a single grid call."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from email.utils import parsedate_to_datetime
from typing import TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from megaverse.errors.exceptions import (
    ApiError,
    RateLimitError,
    TerminalError,
    TransientError,
)
from megaverse.types import ErrorKind, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_JITTER_RANGE = (0.7, 1.3)


def parse_retry_after(value: str | None, now: float | None = None) -> float | None:
    """Parse a Retry-After header into seconds.

    Accepts either delta-seconds ("5") or an HTTP-date. Dates in the past
    yield 0. Returns None when the header is absent or unreadable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isdigit():
        return float(int(value))
    try:
        target = parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError, OverflowError) as e:
        logger.warning("Cannot parse Retry-After header %r, using default delay: %s", value, e)
        return None
    current = time.time() if now is None else now
    return max(0.0, target - current)


def classify_http_error(response: httpx.Response, context: str) -> ApiError:
    """Convert a non-2xx response into our exception hierarchy."""
    status = response.status_code
    message = f"{context} failed ({status}): {response.text}"
    headers = dict(response.headers)

    if status == 429:
        return RateLimitError(
            message,
            headers=headers,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if 500 <= status < 600:
        return TransientError(
            message, kind=ErrorKind.SERVER_ERROR, http_status=status, headers=headers
        )
    kind = ErrorKind.CLIENT_ERROR if 400 <= status < 500 else ErrorKind.UNKNOWN
    return TerminalError(message, kind=kind, http_status=status, headers=headers)


def classify_transport_error(exc: httpx.TransportError, context: str) -> TransientError:
    """Dropped connections and timeouts never reached the service; retry them."""
    return TransientError(f"{context} failed: {exc}", kind=ErrorKind.UNKNOWN)


def is_rate_limited(exc: BaseException | None) -> bool:
    return isinstance(exc, ApiError) and exc.is_rate_limited


def default_retryable(exc: BaseException) -> bool:
    """429, any 5xx and transport failures are retryable; nothing else is."""
    if isinstance(exc, TransientError):
        return True
    return isinstance(exc, ApiError) and exc.kind in (
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
    )


def compute_backoff(attempt: int, error: BaseException, policy: RetryPolicy) -> float:
    """Delay in seconds before retry number ``attempt`` (1-indexed)."""
    delay = min(policy.min_delay * policy.factor ** (attempt - 1), policy.max_delay)

    if is_rate_limited(error):
        hint = error.retry_after
        if hint is None:
            hint = parse_retry_after(error.headers.get("retry-after"))
        delay = min(hint if hint is not None else delay * 2, policy.max_delay)

    if policy.jitter:
        delay *= random.uniform(*_JITTER_RANGE)

    return delay


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with retry + backoff.

    Raises the last error once ``policy.max_retries`` retries are spent, or
    the first error the policy does not consider retryable.
    """
    policy = policy or RetryPolicy()
    retryable = policy.retryable or default_retryable

    def should_retry(exc: BaseException) -> bool:
        if retryable(exc):
            return True
        logger.debug("Not retrying %s: %s", type(exc).__name__, exc)
        return False

    def wait(state: RetryCallState) -> float:
        return compute_backoff(state.attempt_number, state.outcome.exception(), policy)

    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception()
        delay = state.next_action.sleep
        if is_rate_limited(exc):
            logger.warning(
                "Rate limited! Retry #%d/%d in %.1fs...",
                state.attempt_number,
                policy.max_retries,
                delay,
            )
        else:
            logger.warning(
                "Retry #%d/%d in %.1fs due to error: %s",
                state.attempt_number,
                policy.max_retries,
                delay,
                exc,
            )
        if policy.on_retry:
            policy.on_retry(exc, state.attempt_number, delay)

    def give_up(state: RetryCallState) -> T:
        logger.error(
            "Max retries (%d) exceeded. Last error: %s",
            policy.max_retries,
            state.outcome.exception(),
        )
        return state.outcome.result()

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait,
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep,
        retry_error_callback=give_up,
    )
    return await retrying(operation)
