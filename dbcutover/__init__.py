"""
dbcutover package.

Zero-downtime blue/green cutover orchestration for managed database
instances.  Heavy dependencies (Ray) stay lazily imported so packaging tools
do not need them during metadata builds.
"""

from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "BlueGreenOrchestrator",
    "InMemoryControlPlane",
    "InstanceLifecycle",
    "RayCutoverRunner",
    "__version__",
]


try:
    __version__ = version("dbcutover-core")
except PackageNotFoundError:
    __version__ = "0.0.0"


_LAZY_TARGETS = {
    "BlueGreenOrchestrator": ("dbcutover.core.controllers.orchestrator", "BlueGreenOrchestrator"),
    "InMemoryControlPlane": ("dbcutover.simple", "InMemoryControlPlane"),
    "InstanceLifecycle": ("dbcutover.core.controllers.lifecycle", "InstanceLifecycle"),
    "RayCutoverRunner": ("dbcutover.core.controllers.ray_runner", "RayCutoverRunner"),
}


def __getattr__(name: str):
    """Load public symbols on first access."""
    target = _LAZY_TARGETS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

    module_name, attribute = target
    module = import_module(module_name)
    value = getattr(module, attribute)
    globals()[name] = value
    return value
