"""
Orchestration engine primitives: deadline budget, state waiter, retry
runner and the cleanup stack.
"""

from __future__ import annotations

from .cleanup import CleanupAction, CleanupStack
from .deadline import DeadlineBudget
from .retry import ErrorClassifier, RetryRule, RetryRunner
from .waiter import StateWaiter, StatusFetch, WaitSpec, build_wait_spec

__all__ = [
    "CleanupAction",
    "CleanupStack",
    "DeadlineBudget",
    "ErrorClassifier",
    "RetryRule",
    "RetryRunner",
    "StateWaiter",
    "StatusFetch",
    "WaitSpec",
    "build_wait_spec",
]
