"""
Generic state-polling waiter.

Turns a remote resource's changing status string into a blocking
wait-for-target-state call:

- sleep ``settle_delay`` before the first poll (a read right after a
  mutating call is almost always stale);
- poll every ``poll_interval`` seconds (exponential 0.1s → 10s backoff when
  the interval is zero);
- succeed after ``continuous_target_occurrence`` consecutive target
  observations;
- fail immediately on a status outside pending and target;
- treat "not found" as success for disappearance waits (empty target),
  otherwise tolerate it for ``not_found_checks`` consecutive polls;
- fail with the last observation once the timeout elapses.

Fetch errors are never retried here; retrying the underlying call is the
:class:`~dbcutover.core.engine.retry.RetryRunner`'s job.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple

from dbcutover.core.errors import (
    DeadlineExceededError,
    NotFoundError,
    UnexpectedStateError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)

# Returns ``(observation, status)``; ``(None, "")`` means the resource is gone.
StatusFetch = Callable[[], Tuple[Optional[Any], str]]

_MIN_BACKOFF = 0.1
_MAX_BACKOFF = 10.0


@dataclass(frozen=True)
class WaitSpec:
    """Immutable description of one wait point."""

    pending: FrozenSet[str]
    target: FrozenSet[str]
    timeout: float
    poll_interval: float = 10.0
    settle_delay: float = 0.0
    continuous_target_occurrence: int = 3
    not_found_checks: int = 20

    def __post_init__(self) -> None:
        object.__setattr__(self, "pending", frozenset(self.pending))
        object.__setattr__(self, "target", frozenset(self.target))
        overlap = self.pending & self.target
        if overlap:
            raise ValueError(f"pending and target states overlap: {sorted(overlap)}")
        if self.continuous_target_occurrence < 1:
            raise ValueError("continuous_target_occurrence must be at least 1")
        if self.poll_interval < 0 or self.settle_delay < 0:
            raise ValueError("poll_interval and settle_delay must be non-negative")
        if self.not_found_checks < 0:
            raise ValueError("not_found_checks must be non-negative")

    @property
    def waits_for_disappearance(self) -> bool:
        return not self.target or "" in self.target

    def with_overrides(self, **changes: Any) -> "WaitSpec":
        """Copy with some fields replaced, e.g. ``settle_delay=0`` for follow-up cleanup waits."""
        changes = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **changes) if changes else self


def build_wait_spec(
    pending: Iterable[str],
    target: Iterable[str],
    timeout: float,
    defaults: Any = None,
    **overrides: Any,
) -> WaitSpec:
    """
    Assemble a :class:`WaitSpec` from a waiter profile (``WaiterDefaults``)
    plus explicit overrides.
    """
    fields = {}
    if defaults is not None:
        fields = {
            "poll_interval": defaults.poll_interval,
            "settle_delay": defaults.settle_delay,
            "continuous_target_occurrence": defaults.continuous_target_occurrence,
            "not_found_checks": defaults.not_found_checks,
        }
    fields.update({key: value for key, value in overrides.items() if value is not None})
    return WaitSpec(pending=frozenset(pending), target=frozenset(target), timeout=timeout, **fields)


class StateWaiter:
    """Blocking poll-sleep-poll state machine over a status fetch function."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep

    def wait(self, fetch: StatusFetch, spec: WaitSpec, *, resource: str = "resource") -> Optional[Any]:
        """
        Block until ``fetch`` reports a target status.

        Returns:
            The last observation, or ``None`` when the resource disappeared
            and disappearance was the target.

        Raises:
            DeadlineExceededError: ``spec.timeout`` is already non-positive.
            UnexpectedStateError: a status outside pending and target was seen.
            NotFoundError: the resource stayed missing for more than
                ``not_found_checks`` polls while a real target was expected.
            WaitTimeoutError: still pending when the timeout elapsed.
        """
        if spec.timeout <= 0:
            raise DeadlineExceededError(
                f"deadline exceeded before waiting for {resource} to reach {sorted(spec.target) or 'deletion'}"
            )

        deadline = self._clock() + spec.timeout
        last_observation: Optional[Any] = None
        last_state: Optional[str] = None
        target_occurrence = 0
        not_found_ticks = 0
        backoff = _MIN_BACKOFF

        logger.debug(
            "Waiting for %s: pending=%s target=%s timeout=%.0fs delay=%.0fs",
            resource,
            sorted(spec.pending),
            sorted(spec.target),
            spec.timeout,
            spec.settle_delay,
        )

        if spec.settle_delay > 0:
            self._pause(min(spec.settle_delay, deadline - self._clock()))

        while True:
            if self._clock() >= deadline:
                logger.debug("Wait for %s timed out (last state %r)", resource, last_state)
                raise WaitTimeoutError(spec.timeout, spec.target, last_state, last_observation)

            observation, state = self._poll(fetch)

            if observation is None:
                target_occurrence = 0
                if spec.waits_for_disappearance:
                    logger.debug("%s no longer exists", resource)
                    return None
                not_found_ticks += 1
                if not_found_ticks > spec.not_found_checks:
                    raise NotFoundError(f"couldn't find {resource} ({not_found_ticks} consecutive checks)")
                logger.debug("%s not found yet (%d/%d)", resource, not_found_ticks, spec.not_found_checks)
            else:
                not_found_ticks = 0
                last_observation, last_state = observation, state
                if state in spec.target:
                    target_occurrence += 1
                    if target_occurrence >= spec.continuous_target_occurrence:
                        logger.debug("%s reached %r", resource, state)
                        return observation
                    logger.debug(
                        "%s reached %r (%d/%d consecutive)",
                        resource,
                        state,
                        target_occurrence,
                        spec.continuous_target_occurrence,
                    )
                elif state in spec.pending:
                    target_occurrence = 0
                else:
                    raise UnexpectedStateError(state, spec.target, observation)

            if spec.poll_interval > 0:
                interval = spec.poll_interval
            else:
                interval = backoff
                backoff = min(backoff * 2, _MAX_BACKOFF)
            self._pause(min(interval, deadline - self._clock()))

    def _poll(self, fetch: StatusFetch) -> Tuple[Optional[Any], str]:
        try:
            observation, state = fetch()
        except NotFoundError:
            return None, ""
        return observation, state or ""

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep(seconds)
