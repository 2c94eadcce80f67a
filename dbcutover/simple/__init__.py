"""
Single-process helpers for demos and tests.

``InMemoryControlPlane`` stands in for the remote API so that complete
cutovers can run without any cloud credentials.
"""

from .control_plane import InMemoryControlPlane  # noqa: F401

__all__ = ["InMemoryControlPlane"]
