"""
In-memory control plane.

Behaves like the remote API closely enough to drive complete cutovers in
demos and tests: resources move through scripted statuses one describe call
at a time, a switchover renames the blue/green instances, deletion
protection and duplicate deletes are rejected with the real error codes.

Scripting::

    plane = InMemoryControlPlane()
    plane.add_instance("db", engine="mysql")
    plane.script_instance("db", "modifying", "available")   # replayed by describe
    plane.script_deployment("bgd-0001", "PROVISIONING", "INVALID_CONFIGURATION",
                            details="parameter group mismatch")
    plane.fail("switchover_deployment", RemoteAPIError("InvalidBlueGreenDeploymentStateFault", "busy"))

``None`` in a script means the resource disappears; the last status sticks.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple

from dbcutover.config.policy import (
    ERR_CODE_INVALID_DB_INSTANCE_STATE,
    ERR_CODE_INVALID_DEPLOYMENT_STATE,
    ERR_CODE_INVALID_PARAMETER_COMBINATION,
)
from dbcutover.core.control_plane import ControlPlane
from dbcutover.core.entities.resources import Deployment, InstanceSnapshot, instance_arn, parse_instance_arn
from dbcutover.core.entities.status import DeploymentStatus, InstanceStatus
from dbcutover.core.errors import NotFoundError, RemoteAPIError

logger = logging.getLogger(__name__)

Script = Deque[Optional[str]]


@dataclass
class _InstanceRecord:
    identifier: str
    status: str
    engine: str = "mysql"
    deletion_protection: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)
    script: Script = field(default_factory=deque)


@dataclass
class _DeploymentRecord:
    identifier: str
    status: str
    source_id: str
    target_id: str
    status_details: str = ""
    script: Script = field(default_factory=deque)
    details: Dict[str, str] = field(default_factory=dict)
    delete_target: bool = False


class InMemoryControlPlane(ControlPlane):
    """Scripted, single-process stand-in for the remote control plane."""

    def __init__(
        self,
        *,
        partition: str = "aws",
        region: str = "us-west-2",
        account: str = "123456789012",
        simulate_transitions: bool = True,
    ):
        self.partition = partition
        self.region = region
        self.account = account
        self.simulate_transitions = simulate_transitions
        self.instances: Dict[str, _InstanceRecord] = {}
        self.deployments: Dict[str, _DeploymentRecord] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...], Dict[str, Any]]] = []
        self._failures: Dict[str, Deque[Exception]] = {}
        self._pending_scripts: Dict[str, Tuple[List[Optional[str]], Dict[str, str]]] = {}
        self._sequence = 0

    # ------------------------------------------------------------------ #
    # Test / demo helpers
    # ------------------------------------------------------------------ #

    def add_instance(
        self,
        identifier: str,
        status: str = InstanceStatus.AVAILABLE.value,
        *,
        engine: str = "mysql",
        deletion_protection: bool = False,
        **attributes: Any,
    ) -> InstanceSnapshot:
        self.instances[identifier] = _InstanceRecord(
            identifier=identifier,
            status=status,
            engine=engine,
            deletion_protection=deletion_protection,
            attributes=dict(attributes),
        )
        return self._snapshot(self.instances[identifier])

    def arn(self, identifier: str) -> str:
        return instance_arn(identifier, partition=self.partition, region=self.region, account=self.account)

    def script_instance(self, identifier: str, *statuses: Optional[str]) -> None:
        """Replace the status script of an existing instance."""
        record = self.instances[identifier]
        record.script = deque(statuses)

    def script_deployment(self, identifier: str, *statuses: Optional[str], details: str = "") -> None:
        """
        Script a deployment, which may not exist yet (ids are ``bgd-0001``,
        ``bgd-0002``, ...).  ``details`` becomes the status details of any
        failed status in the script.
        """
        failed = {DeploymentStatus.INVALID_CONFIGURATION.value, DeploymentStatus.SWITCHOVER_FAILED.value}
        detail_map = {status: details for status in statuses if status in failed and details}
        record = self.deployments.get(identifier)
        if record is None:
            self._pending_scripts[identifier] = (list(statuses), detail_map)
            return
        record.script = deque(statuses)
        record.details.update(detail_map)

    def fail(self, method: str, *errors: Exception) -> None:
        """Raise ``errors`` (in order) from the next calls to ``method``."""
        self._failures.setdefault(method, deque()).extend(errors)

    def instance(self, identifier: str) -> Optional[InstanceSnapshot]:
        """Current snapshot without advancing the script."""
        record = self.instances.get(identifier)
        return self._snapshot(record) if record is not None else None

    def calls_to(self, method: str) -> List[Tuple[Tuple[Any, ...], Dict[str, Any]]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _record_call(self, method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((method, args, copy.deepcopy(kwargs)))
        pending = self._failures.get(method)
        if pending:
            error = pending.popleft()
            logger.debug("InMemoryControlPlane.%s raising injected %r", method, error)
            raise error

    def _next_id(self) -> int:
        self._sequence += 1
        return self._sequence

    def _snapshot(self, record: _InstanceRecord) -> InstanceSnapshot:
        return InstanceSnapshot(
            identifier=record.identifier,
            status=record.status,
            arn=self.arn(record.identifier),
            engine=record.engine,
            deletion_protection=record.deletion_protection,
            attributes=dict(record.attributes),
        )

    def _deployment(self, record: _DeploymentRecord) -> Deployment:
        return Deployment(
            identifier=record.identifier,
            status=record.status,
            source=self.arn(record.source_id),
            target=self.arn(record.target_id),
            status_details=record.status_details,
        )

    def _get_instance(self, identifier: str) -> _InstanceRecord:
        record = self.instances.get(identifier)
        if record is None:
            raise NotFoundError(f"DBInstanceNotFound: DB instance {identifier} not found")
        return record

    def _get_deployment(self, identifier: str) -> _DeploymentRecord:
        record = self.deployments.get(identifier)
        if record is None:
            raise NotFoundError(f"BlueGreenDeploymentNotFoundFault: {identifier} not found")
        return record

    def _schedule(self, record: Any, *statuses: Optional[str]) -> None:
        if self.simulate_transitions and not record.script:
            record.script = deque(statuses)

    def _advance_instance(self, identifier: str) -> _InstanceRecord:
        record = self._get_instance(identifier)
        if record.script:
            status = record.script.popleft()
            if status is None:
                del self.instances[identifier]
                raise NotFoundError(f"DBInstanceNotFound: DB instance {identifier} not found")
            record.status = status
        return record

    def _advance_deployment(self, identifier: str) -> _DeploymentRecord:
        record = self._get_deployment(identifier)
        if record.script:
            status = record.script.popleft()
            if status is None:
                del self.deployments[identifier]
                if record.delete_target:
                    self.instances.pop(record.target_id, None)
                raise NotFoundError(f"BlueGreenDeploymentNotFoundFault: {identifier} not found")
            if status == DeploymentStatus.SWITCHOVER_COMPLETED.value and record.status != status:
                self._rename_after_switchover(record)
            record.status = status
            record.status_details = record.details.get(status, "")
        return record

    def _rename_after_switchover(self, record: _DeploymentRecord) -> None:
        """Blue takes a ``-old1`` suffix, green takes the production name."""
        production = record.source_id
        retired = f"{production}-old1"
        blue = self.instances.pop(production)
        green = self.instances.pop(record.target_id)
        blue.identifier = retired
        green.identifier = production
        self.instances[retired] = blue
        self.instances[production] = green
        record.source_id = retired
        record.target_id = production
        logger.debug("Switchover renamed %s -> %s and green -> %s", production, retired, production)

    # ------------------------------------------------------------------ #
    # ControlPlane: DB instances
    # ------------------------------------------------------------------ #

    def describe_instance(self, identifier: str) -> InstanceSnapshot:
        self._record_call("describe_instance", identifier)
        return self._snapshot(self._advance_instance(identifier))

    def modify_instance(self, identifier: str, changes: Mapping[str, Any]) -> InstanceSnapshot:
        self._record_call("modify_instance", identifier, changes=dict(changes))
        record = self._get_instance(identifier)
        for key, value in changes.items():
            if key == "apply_immediately":
                continue
            if key == "deletion_protection":
                record.deletion_protection = bool(value)
            else:
                record.attributes[key] = value
        self._schedule(record, InstanceStatus.MODIFYING.value, InstanceStatus.AVAILABLE.value)
        return self._snapshot(record)

    def delete_instance(
        self,
        identifier: str,
        *,
        skip_final_snapshot: bool = True,
        final_snapshot_identifier: Optional[str] = None,
        delete_automated_backups: bool = True,
    ) -> None:
        self._record_call(
            "delete_instance",
            identifier,
            skip_final_snapshot=skip_final_snapshot,
            final_snapshot_identifier=final_snapshot_identifier,
            delete_automated_backups=delete_automated_backups,
        )
        record = self._get_instance(identifier)
        if record.deletion_protection:
            raise RemoteAPIError(
                ERR_CODE_INVALID_PARAMETER_COMBINATION,
                "Cannot delete protected DB Instance, please disable deletion protection and try again.",
            )
        if record.status == InstanceStatus.DELETING.value:
            raise RemoteAPIError(
                ERR_CODE_INVALID_DB_INSTANCE_STATE,
                f"Instance {identifier} is already being deleted.",
            )
        record.status = InstanceStatus.DELETING.value
        self._schedule(record, InstanceStatus.DELETING.value, None)

    def promote_read_replica(
        self,
        identifier: str,
        *,
        backup_retention_period: int,
        backup_window: Optional[str] = None,
    ) -> InstanceSnapshot:
        self._record_call(
            "promote_read_replica",
            identifier,
            backup_retention_period=backup_retention_period,
            backup_window=backup_window,
        )
        record = self._get_instance(identifier)
        record.attributes.pop("replicate_source_db", None)
        record.attributes["backup_retention_period"] = backup_retention_period
        self._schedule(record, InstanceStatus.MODIFYING.value, InstanceStatus.AVAILABLE.value)
        return self._snapshot(record)

    # ------------------------------------------------------------------ #
    # ControlPlane: blue/green deployments
    # ------------------------------------------------------------------ #

    def create_deployment(self, request: Mapping[str, Any]) -> Deployment:
        self._record_call("create_deployment", request=dict(request))
        source_id = parse_instance_arn(str(request["source"]))
        source = self._get_instance(source_id)

        sequence = self._next_id()
        identifier = f"bgd-{sequence:04d}"
        target_id = f"{source_id}-green-{sequence:04d}"

        green = copy.deepcopy(source)
        green.identifier = target_id
        green.status = InstanceStatus.CREATING.value
        green.deletion_protection = False
        green.script = deque()
        if request.get("target_engine_version"):
            green.attributes["engine_version"] = request["target_engine_version"]
        if request.get("target_db_parameter_group_name"):
            green.attributes["parameter_group_name"] = request["target_db_parameter_group_name"]
        self._schedule(green, InstanceStatus.CREATING.value, InstanceStatus.AVAILABLE.value)
        self.instances[target_id] = green

        record = _DeploymentRecord(
            identifier=identifier,
            status=DeploymentStatus.PROVISIONING.value,
            source_id=source_id,
            target_id=target_id,
        )
        scripted = self._pending_scripts.pop(identifier, None)
        if scripted is not None:
            statuses, details = scripted
            record.script = deque(statuses)
            record.details.update(details)
        else:
            self._schedule(record, DeploymentStatus.PROVISIONING.value, DeploymentStatus.AVAILABLE.value)
        self.deployments[identifier] = record
        return self._deployment(record)

    def describe_deployment(self, identifier: str) -> Deployment:
        self._record_call("describe_deployment", identifier)
        return self._deployment(self._advance_deployment(identifier))

    def switchover_deployment(self, identifier: str) -> Deployment:
        self._record_call("switchover_deployment", identifier)
        record = self._get_deployment(identifier)
        if record.status != DeploymentStatus.AVAILABLE.value:
            raise RemoteAPIError(
                ERR_CODE_INVALID_DEPLOYMENT_STATE,
                f"Blue/Green Deployment {identifier} is {record.status}",
            )
        record.status = DeploymentStatus.SWITCHOVER_IN_PROGRESS.value
        self._schedule(
            record,
            DeploymentStatus.SWITCHOVER_IN_PROGRESS.value,
            DeploymentStatus.SWITCHOVER_COMPLETED.value,
        )
        return self._deployment(record)

    def delete_deployment(self, identifier: str, *, delete_target: bool = False) -> None:
        self._record_call("delete_deployment", identifier, delete_target=delete_target)
        record = self._get_deployment(identifier)
        if delete_target and record.target_id in self.instances:
            self.instances[record.target_id].status = InstanceStatus.DELETING.value
            record.delete_target = True
        record.status = DeploymentStatus.DELETING.value
        record.script = deque([DeploymentStatus.DELETING.value, None])
