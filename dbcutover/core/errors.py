"""
Error taxonomy for cutover orchestration.

Every error carries a ``kind`` tag so that retry predicates and callers can
react without inspecting concrete SDK exception types:

- ``api``:              the control plane rejected a call (code + message).
- ``not_found``:        the described resource does not exist.
- ``unexpected_state``: a watched resource reported a status outside the
                        expected pending/target sets.
- ``timeout``:          the time budget ran out (still pending, or retrying).
- ``precondition``:     caller-correctable configuration conflict.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional


class ErrorKind(str, Enum):
    """Tag attached to every :class:`CutoverError`."""

    API = "api"
    NOT_FOUND = "not_found"
    UNEXPECTED_STATE = "unexpected_state"
    TIMEOUT = "timeout"
    PRECONDITION = "precondition"


class CutoverError(Exception):
    """Base class for all orchestration errors."""

    kind: ErrorKind = ErrorKind.API


class RemoteAPIError(CutoverError):
    """An error response returned by the remote control plane."""

    kind = ErrorKind.API

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}" if message else code)


class NotFoundError(CutoverError):
    """Raised when the requested resource does not exist (any more)."""

    kind = ErrorKind.NOT_FOUND


def _format_states(states: Iterable[str]) -> str:
    values = sorted(states)
    if not values:
        return "<gone>"
    return ", ".join(repr(value) for value in values)


class UnexpectedStateError(CutoverError):
    """The watched resource landed on a status outside pending and target."""

    kind = ErrorKind.UNEXPECTED_STATE

    def __init__(
        self,
        state: str,
        expected: Iterable[str],
        observation: Any = None,
        message: Optional[str] = None,
    ):
        self.state = state
        self.expected = frozenset(expected)
        self.observation = observation
        if message is None:
            message = f"unexpected state '{state}', wanted target {_format_states(self.expected)}"
        super().__init__(message)


class WaitTimeoutError(CutoverError):
    """The resource was still pending when the wait timeout elapsed."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        timeout: float,
        expected: Iterable[str],
        last_state: Optional[str] = None,
        observation: Any = None,
    ):
        self.timeout = timeout
        self.expected = frozenset(expected)
        self.last_state = last_state
        self.observation = observation
        super().__init__(
            f"timeout while waiting for state to become {_format_states(self.expected)} "
            f"(last state: '{last_state or ''}', timeout: {timeout:.0f}s)"
        )


class DeadlineExceededError(CutoverError):
    """A stage started after the shared deadline budget was already spent."""

    kind = ErrorKind.TIMEOUT


class RetryTimeoutError(CutoverError):
    """The retry budget ran out while the call kept failing with retryable errors."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, last_error: BaseException, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"timeout after {attempts} attempt(s): {last_error}")


class PreconditionError(CutoverError):
    """The requested change is not eligible; nothing was touched."""

    kind = ErrorKind.PRECONDITION


class StageError(CutoverError):
    """Decorates an inner failure with the orchestration stage and resource id."""

    def __init__(self, stage: str, resource_id: str, cause: CutoverError):
        self.stage = stage
        self.resource_id = resource_id
        self.cause = cause
        self.kind = cause.kind
        super().__init__(f"updating DB Instance ({resource_id}): {stage}: {cause}")


__all__ = [
    "CutoverError",
    "DeadlineExceededError",
    "ErrorKind",
    "NotFoundError",
    "PreconditionError",
    "RemoteAPIError",
    "RetryTimeoutError",
    "StageError",
    "UnexpectedStateError",
    "WaitTimeoutError",
]
