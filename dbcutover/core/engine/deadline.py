"""
Deadline budget shared by every stage of one orchestration run.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from dbcutover.core.errors import DeadlineExceededError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class DeadlineBudget:
    """
    Fixed total duration converted into an absolute deadline.

    Stages call :meth:`remaining` to size their own timeout, so sequential
    stages can never add up to more than the original budget and a stage
    that starts late inherits a shorter timeout.  The deadline is never
    reset.
    """

    def __init__(self, total: float, *, clock: Clock = time.monotonic):
        if total < 0:
            raise ValueError(f"Deadline budget must be non-negative, got {total}")
        self._clock = clock
        self.total = float(total)
        self.started_at = clock()
        self.deadline = self.started_at + self.total

    def remaining(self) -> float:
        """Seconds left until the deadline, never negative."""
        return max(0.0, self.deadline - self._clock())

    def elapsed(self) -> float:
        return max(0.0, self._clock() - self.started_at)

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def ensure_remaining(self, stage: str) -> float:
        """
        Return the remaining budget or fail fast when it is spent.

        Raises:
            DeadlineExceededError: if no time is left for ``stage``.
        """
        remaining = self.remaining()
        if remaining <= 0.0:
            logger.debug("Deadline exhausted before stage '%s' (budget %.0fs)", stage, self.total)
            raise DeadlineExceededError(
                f"deadline exceeded before {stage} (total budget {self.total:.0f}s)"
            )
        return remaining

    def __repr__(self) -> str:
        return f"DeadlineBudget(total={self.total:.1f}, remaining={self.remaining():.1f})"
