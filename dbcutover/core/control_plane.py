"""
Abstract remote control-plane capability consumed by the orchestrator.

Implementations wrap a concrete API client.  They must raise
:class:`~dbcutover.core.errors.NotFoundError` for missing resources and
:class:`~dbcutover.core.errors.RemoteAPIError` for any other rejection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from dbcutover.core.engine.waiter import StatusFetch
from dbcutover.core.entities.resources import Deployment, InstanceSnapshot
from dbcutover.core.errors import NotFoundError


class ControlPlane(ABC):
    """Per-resource-kind operations on the remote control plane."""

    # ------------------------------------------------------------------ #
    # DB instances
    # ------------------------------------------------------------------ #

    @abstractmethod
    def describe_instance(self, identifier: str) -> InstanceSnapshot:
        """Return the current snapshot; raise ``NotFoundError`` if missing."""

    @abstractmethod
    def modify_instance(self, identifier: str, changes: Mapping[str, Any]) -> InstanceSnapshot:
        """Apply ``changes`` (modify request fields) to the instance."""

    @abstractmethod
    def delete_instance(
        self,
        identifier: str,
        *,
        skip_final_snapshot: bool = True,
        final_snapshot_identifier: Optional[str] = None,
        delete_automated_backups: bool = True,
    ) -> None:
        """Start deleting the instance."""

    @abstractmethod
    def promote_read_replica(
        self,
        identifier: str,
        *,
        backup_retention_period: int,
        backup_window: Optional[str] = None,
    ) -> InstanceSnapshot:
        """Promote a read replica to a standalone instance."""

    # ------------------------------------------------------------------ #
    # Blue/green deployments
    # ------------------------------------------------------------------ #

    @abstractmethod
    def create_deployment(self, request: Mapping[str, Any]) -> Deployment:
        """Create the parallel (green) environment."""

    @abstractmethod
    def describe_deployment(self, identifier: str) -> Deployment:
        """Return the current deployment; raise ``NotFoundError`` if missing."""

    @abstractmethod
    def switchover_deployment(self, identifier: str) -> Deployment:
        """Start switching production traffic to the green environment."""

    @abstractmethod
    def delete_deployment(self, identifier: str, *, delete_target: bool = False) -> None:
        """Delete the deployment object, and optionally the green resources."""


def instance_status_fetch(plane: ControlPlane, identifier: str) -> StatusFetch:
    """Status-fetch closure for a DB instance; ``(None, "")`` once it is gone."""

    def _fetch():
        try:
            snapshot = plane.describe_instance(identifier)
        except NotFoundError:
            return None, ""
        return snapshot, snapshot.status

    return _fetch


def deployment_status_fetch(plane: ControlPlane, identifier: str) -> StatusFetch:
    """Status-fetch closure for a deployment; ``(None, "")`` once it is gone."""

    def _fetch():
        try:
            deployment = plane.describe_deployment(identifier)
        except NotFoundError:
            return None, ""
        return deployment, deployment.status

    return _fetch

