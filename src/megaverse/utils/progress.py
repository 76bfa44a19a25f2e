"""Progress side channel for long task runs."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ProgressLogger:
    """Call once per finished task; logs every ``interval`` calls and on the last one."""

    def __init__(self, label: str, total: int, interval: int = 10) -> None:
        self._label = label
        self._total = total
        self._interval = max(1, interval)
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def __call__(self) -> None:
        self._count += 1
        if self._count % self._interval == 0 or self._count == self._total:
            pct = round(self._count / self._total * 100) if self._total else 100
            logger.info("%s: %d/%d (%d%%)", self._label, self._count, self._total, pct)
