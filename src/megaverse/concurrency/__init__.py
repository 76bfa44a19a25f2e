"""Concurrency — rate limiting, worker pool, batching and feedback control."""

from megaverse.concurrency.batching import BatchScheduler
from megaverse.concurrency.controller import ConcurrencyController
from megaverse.concurrency.pool import ConcurrencyPool
from megaverse.concurrency.rate_limiter import RateLimiter

__all__ = ["BatchScheduler", "ConcurrencyController", "ConcurrencyPool", "RateLimiter"]
