"""Error handling — exceptions and retry logic."""

from megaverse.errors.exceptions import (
    ApiError,
    ConfigError,
    MegaverseError,
    RateLimitError,
    ReconciliationError,
    TerminalError,
    TransientError,
)

__all__ = [
    "MegaverseError",
    "ApiError",
    "TransientError",
    "RateLimitError",
    "TerminalError",
    "ConfigError",
    "ReconciliationError",
]
