from __future__ import annotations

import random
from typing import Optional


class BackoffStrategy:
    """Exponential backoff with jitter for retry delays.

    Computes sleep duration as base * 2^(attempt-1) plus up to ``jitter``
    (a fraction of the exponential term), capped at a configurable maximum.
    Successive attempts never get a shorter delay."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0, jitter: float = 0.1) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._jitter = max(0.0, min(jitter, 1.0))

    def get_sleep(self, attempt: int, reason: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds after a failed attempt."""
        exp = self._base * (2 ** max(attempt - 1, 0))
        jitter = random.uniform(0, exp * self._jitter) if self._jitter else 0.0
        return min(self._max, exp + jitter)
