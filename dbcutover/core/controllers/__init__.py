"""
Public facing controllers for dbcutover.
"""

from .instance import InstanceHandler, build_modify_request  # noqa: F401
from .lifecycle import InstanceLifecycle  # noqa: F401
from .orchestrator import BlueGreenOrchestrator, CutoverStage  # noqa: F401
from .ray_runner import RayCutoverRunner  # noqa: F401

__all__ = [
    "BlueGreenOrchestrator",
    "CutoverStage",
    "InstanceHandler",
    "InstanceLifecycle",
    "RayCutoverRunner",
    "build_modify_request",
]
