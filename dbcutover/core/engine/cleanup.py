"""
Deferred cleanup actions drained in reverse acquisition order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from dbcutover.core.entities.types import Diagnostics
from dbcutover.core.errors import CutoverError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupAction:
    """
    A deferred operation plus its parameters.

    ``func`` is invoked as ``func(*args, settle_delay=<delay>, **kwargs)``;
    ``settle_delay`` is ``None`` for the first drained action (use the
    normal delay) and ``0`` for every later one.
    """

    description: str
    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    def run(self, settle_delay: Optional[float]) -> Any:
        return self.func(*self.args, settle_delay=settle_delay, **self.kwargs)


class CleanupStack:
    """Ordered list of cleanup actions; drained at most once."""

    def __init__(self) -> None:
        self._actions: List[CleanupAction] = []
        self._drained = False

    def push(self, description: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> CleanupAction:
        if self._drained:
            raise RuntimeError("cleanup stack already drained")
        action = CleanupAction(description=description, func=func, args=args, kwargs=kwargs)
        self._actions.append(action)
        logger.debug("Registered cleanup action #%d: %s", len(self._actions), description)
        return action

    @property
    def drained(self) -> bool:
        return self._drained

    def pending(self) -> List[str]:
        return [action.description for action in self._actions]

    def __len__(self) -> int:
        return len(self._actions)

    def drain(self, diagnostics: Diagnostics) -> List[str]:
        """
        Run every registered action, newest first.

        Failures are appended to ``diagnostics`` as errors and never stop the
        remaining actions.  Returns the descriptions in execution order.
        """
        if self._drained:
            return []
        self._drained = True

        executed: List[str] = []
        for index, action in enumerate(reversed(self._actions)):
            # Later waits are most likely already satisfied.
            delay = None if index == 0 else 0.0
            executed.append(action.description)
            try:
                action.run(delay)
            except Exception as exc:
                if not isinstance(exc, CutoverError):
                    logger.exception("Cleanup action '%s' raised unexpectedly", action.description)
                else:
                    logger.warning("Cleanup action '%s' failed: %s", action.description, exc)
                diagnostics.append_error(f"{action.description}: {exc}")
        self._actions.clear()
        return executed
