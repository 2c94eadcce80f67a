"""
Ray actor implementations that host cutover runs.
"""

from .config import ActorConfig  # noqa: F401
from .cutover_actor import CutoverActor  # noqa: F401

__all__ = [
    "ActorConfig",
    "CutoverActor",
]
