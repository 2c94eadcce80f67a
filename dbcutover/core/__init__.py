"""
Core package bootstrap for the dbcutover runtime.

Re-exports the primary entry points so callers can simply do::

    from dbcutover.core import BlueGreenOrchestrator
"""

from __future__ import annotations

from dbcutover.core.controllers.lifecycle import InstanceLifecycle
from dbcutover.core.controllers.orchestrator import BlueGreenOrchestrator

__all__ = ["BlueGreenOrchestrator", "InstanceLifecycle"]
