"""Pydantic model for reconciler settings."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from megaverse.config import defaults


class ReconcilerSettings(BaseModel):
    candidate_id: str | None = None
    base_url: str = defaults.DEFAULT_BASE_URL
    request_timeout: float = Field(default=defaults.DEFAULT_REQUEST_TIMEOUT, gt=0)

    initial_concurrency: int = Field(default=defaults.DEFAULT_INITIAL_CONCURRENCY, ge=1)
    max_concurrency: int = Field(default=defaults.DEFAULT_MAX_CONCURRENCY, ge=1)
    adjust_interval: float = Field(default=defaults.DEFAULT_ADJUST_INTERVAL, gt=0)
    batch_size: int = Field(default=defaults.DEFAULT_BATCH_SIZE, ge=1)
    batch_delay: float = Field(default=defaults.DEFAULT_BATCH_DELAY, ge=0)

    max_retries: int = Field(default=defaults.DEFAULT_MAX_RETRIES, ge=0)
    backoff_factor: float = Field(default=defaults.DEFAULT_BACKOFF_FACTOR, gt=0)
    min_delay: float = Field(default=defaults.DEFAULT_MIN_DELAY, ge=0)
    max_delay: float = Field(default=defaults.DEFAULT_MAX_DELAY, ge=0)
    jitter: bool = defaults.DEFAULT_JITTER

    cleanup_passes: int = Field(default=defaults.DEFAULT_CLEANUP_PASSES, ge=0)
    progress_interval: int = Field(default=defaults.DEFAULT_PROGRESS_INTERVAL, ge=1)
    log_level: str = defaults.DEFAULT_LOG_LEVEL

    @model_validator(mode="after")
    def _check_concurrency(self) -> ReconcilerSettings:
        if "initial_concurrency" not in self.model_fields_set:
            self.initial_concurrency = min(self.initial_concurrency, self.max_concurrency)
        elif self.initial_concurrency > self.max_concurrency:
            raise ValueError(
                f"initial_concurrency ({self.initial_concurrency}) exceeds "
                f"max_concurrency ({self.max_concurrency})"
            )
        return self

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ReconcilerSettings:
        """Build from a merged config dict, ignoring keys we don't know."""
        known = {k: v for k, v in config.items() if k in cls.model_fields}
        return cls(**known)
