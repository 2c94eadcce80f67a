"""
Error classification and bounded retry of single remote calls.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, wait_fixed

from dbcutover.config.policy import RetryCallSite, RetryRuleSpec, default_rules
from dbcutover.core.errors import CutoverError, ErrorKind, RemoteAPIError, RetryTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
RetryPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True)
class RetryRule:
    """Matches an API error by code and, optionally, a message fragment."""

    code: str
    message: Optional[str] = None

    def matches(self, error: BaseException) -> bool:
        if not isinstance(error, RemoteAPIError):
            return False
        if error.code != self.code:
            return False
        return self.message is None or self.message in error.message

    @classmethod
    def from_spec(cls, spec: RetryRuleSpec) -> "RetryRule":
        return cls(code=spec["code"], message=spec.get("message"))


class ErrorClassifier:
    """
    Decides whether a failure is transient for one call site.

    Only errors tagged ``api`` can match a rule; not-found, timeout and
    state errors are always terminal here.
    """

    def __init__(self, rules: Iterable[RetryRule] = (), *, name: str = "call"):
        self.name = name
        self.rules: List[RetryRule] = list(rules)

    @classmethod
    def for_call_site(
        cls,
        site: RetryCallSite,
        extra_rules: Sequence[RetryRuleSpec] = (),
    ) -> "ErrorClassifier":
        specs = default_rules(site) + list(extra_rules)
        return cls((RetryRule.from_spec(spec) for spec in specs), name=site.value)

    @classmethod
    def never(cls, name: str = "call") -> "ErrorClassifier":
        return cls((), name=name)

    def is_retryable(self, error: BaseException) -> bool:
        if not isinstance(error, CutoverError) or error.kind is not ErrorKind.API:
            return False
        return any(rule.matches(error) for rule in self.rules)

    __call__ = is_retryable

    def __repr__(self) -> str:
        return f"ErrorClassifier({self.name!r}, rules={len(self.rules)})"


class RetryRunner:
    """
    Re-issues one remote call while the supplied predicate says the failure
    is retryable and the timeout has not elapsed.

    The call is always attempted at least once, even with no time left, so
    cleanup deletes are still issued after the main budget ran out.
    """

    def __init__(
        self,
        *,
        backoff: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if backoff < 0:
            raise ValueError("backoff must be non-negative")
        self.backoff = backoff
        self._clock = clock
        self._sleep = sleep

    def run(
        self,
        op: Callable[[], T],
        is_retryable: RetryPredicate,
        timeout: float,
        *,
        description: str = "remote call",
    ) -> T:
        """
        Returns:
            Whatever ``op`` returns on its first non-failing attempt.

        Raises:
            The first non-retryable error unchanged, or
            :class:`RetryTimeoutError` wrapping the last retryable error once
            ``timeout`` elapsed.
        """
        deadline = self._clock() + max(0.0, timeout)

        def retryable(exc: BaseException) -> bool:
            return isinstance(exc, CutoverError) and is_retryable(exc)

        def out_of_time(_state: RetryCallState) -> bool:
            return self._clock() >= deadline

        def bounded_sleep(seconds: float) -> None:
            # never sleep past the deadline
            seconds = min(seconds, deadline - self._clock())
            if seconds > 0:
                self._sleep(seconds)

        def log_retry(state: RetryCallState) -> None:
            logger.debug(
                "Retrying %s (attempt %d) after retryable error: %s",
                description,
                state.attempt_number,
                state.outcome.exception() if state.outcome else None,
            )

        retrying = Retrying(
            retry=retry_if_exception(retryable),
            stop=out_of_time,
            wait=wait_fixed(self.backoff),
            sleep=bounded_sleep,
            before_sleep=log_retry,
        )
        try:
            return retrying(op)
        except RetryError as exc:
            last = exc.last_attempt
            error = last.exception()
            logger.debug("Giving up on %s after %d attempt(s): %s", description, last.attempt_number, error)
            raise RetryTimeoutError(error, last.attempt_number) from error
