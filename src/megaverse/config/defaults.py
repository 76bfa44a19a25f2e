"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Remote service
DEFAULT_BASE_URL = "https://challenge.crossmint.io/api"
DEFAULT_REQUEST_TIMEOUT = 30.0

# Default concurrency settings
DEFAULT_INITIAL_CONCURRENCY = 3
DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_ADJUST_INTERVAL = 10.0
DEFAULT_BATCH_SIZE = 20
DEFAULT_BATCH_DELAY = 3.0

# Default retry settings
DEFAULT_MAX_RETRIES = 8
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MIN_DELAY = 1.0
DEFAULT_MAX_DELAY = 60.0
DEFAULT_JITTER = True

# Reconciliation
DEFAULT_CLEANUP_PASSES = 3
DEFAULT_PROGRESS_INTERVAL = 10

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging.

    ``initial_concurrency`` is left to the settings model, which clamps it to
    ``max_concurrency`` unless a source sets it explicitly.
    """
    return {
        "base_url": DEFAULT_BASE_URL,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT,
        "max_concurrency": DEFAULT_MAX_CONCURRENCY,
        "adjust_interval": DEFAULT_ADJUST_INTERVAL,
        "batch_size": DEFAULT_BATCH_SIZE,
        "batch_delay": DEFAULT_BATCH_DELAY,
        "max_retries": DEFAULT_MAX_RETRIES,
        "backoff_factor": DEFAULT_BACKOFF_FACTOR,
        "min_delay": DEFAULT_MIN_DELAY,
        "max_delay": DEFAULT_MAX_DELAY,
        "jitter": DEFAULT_JITTER,
        "cleanup_passes": DEFAULT_CLEANUP_PASSES,
        "progress_interval": DEFAULT_PROGRESS_INTERVAL,
        "log_level": DEFAULT_LOG_LEVEL,
    }
