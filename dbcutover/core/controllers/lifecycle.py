"""
Update/delete transitions of a DB instance.

``update_instance`` decides whether a change needs the blue/green cutover,
an in-place modify, a read replica promotion, or nothing at all.
``delete_instance`` removes the instance, working around deletion
protection when the caller asked for it to be off.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from dbcutover.config.policy import (
    ERR_CODE_INVALID_DB_INSTANCE_STATE,
    ERR_CODE_INVALID_PARAMETER_COMBINATION,
    MSG_ALREADY_DELETING,
    MSG_DISABLE_DELETION_PROTECTION,
    RetryCallSite,
)
from dbcutover.core.config import OrchestrationConfig, get_orchestration_config
from dbcutover.core.control_plane import ControlPlane
from dbcutover.core.controllers.instance import build_modify_request
from dbcutover.core.controllers.orchestrator import BlueGreenOrchestrator
from dbcutover.core.engine.deadline import DeadlineBudget
from dbcutover.core.entities.resources import ResourceChange
from dbcutover.core.entities.types import CutoverResult, Diagnostics
from dbcutover.core.errors import CutoverError, NotFoundError, PreconditionError, RemoteAPIError, StageError

logger = logging.getLogger(__name__)

# Attributes that never justify a modify call on their own.
IGNORED_UPDATE_KEYS = (
    "allow_major_version_upgrade",
    "blue_green_update",
    "delete_automated_backups",
    "final_snapshot_identifier",
    "replicate_source_db",
    "skip_final_snapshot",
    "tags",
    "tags_all",
)


def blue_green_enabled(change: ResourceChange) -> bool:
    """``blue_green_update`` may be a mapping (``{"enabled": true}``) or a bare bool."""
    value = change.get("blue_green_update")
    if isinstance(value, Mapping):
        return bool(value.get("enabled", False))
    return bool(value)


def _is_api_error(exc: BaseException, code: str, message: str) -> bool:
    return isinstance(exc, RemoteAPIError) and exc.code == code and message in exc.message


class InstanceLifecycle:
    """Entry point for instance updates and deletes."""

    def __init__(
        self,
        plane: ControlPlane,
        *,
        config: Optional[OrchestrationConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.plane = plane
        self.config = config or get_orchestration_config()
        self._clock = clock
        self.orchestrator = BlueGreenOrchestrator(plane, config=self.config, clock=clock, sleep=sleep)
        self.handler = self.orchestrator.handler

    # ------------------------------------------------------------------ #
    # Update
    # ------------------------------------------------------------------ #

    def update_instance(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> CutoverResult:
        """
        Apply ``desired`` to the instance currently described by ``current``.

        Returns a :class:`CutoverResult`; no remote call is made when nothing
        relevant changed.
        """
        change = ResourceChange(current, desired)
        resource_id = change.resource_id
        budget = DeadlineBudget(
            timeout if timeout is not None else self.config.timeouts.update,
            clock=self._clock,
        )
        result = CutoverResult()

        try:
            if change.has_change("replicate_source_db"):
                self._promote(change, budget)
                result.stages.append("promote")
        except CutoverError as exc:
            result.diagnostics.append_error(str(exc))
            return result

        if not change.has_changes_except(*IGNORED_UPDATE_KEYS):
            logger.debug("DB Instance (%s): nothing to modify", resource_id)
            if result.stages:
                try:
                    result.snapshot = self.plane.describe_instance(resource_id)
                except CutoverError as exc:
                    result.diagnostics.append_error(f"reading DB Instance ({resource_id}): {exc}")
            return result

        if blue_green_enabled(change):
            cutover = self.orchestrator.execute(change, budget)
            cutover.stages[:0] = result.stages
            return cutover

        try:
            self._modify_in_place(change, budget)
            result.stages.append("modify")
            result.snapshot = self.plane.describe_instance(resource_id)
        except CutoverError as exc:
            result.diagnostics.append_error(str(exc))
        return result

    def _promote(self, change: ResourceChange, budget: DeadlineBudget) -> None:
        resource_id = change.resource_id
        if change.get("replicate_source_db"):
            raise PreconditionError("cannot elect new source database for replication")

        logger.info("Promoting read replica DB Instance (%s)", resource_id)
        try:
            self.handler.runner.run(
                lambda: self.plane.promote_read_replica(
                    resource_id,
                    backup_retention_period=int(change.get("backup_retention_period", 0) or 0),
                    backup_window=change.get("backup_window") or None,
                ),
                self.handler.classifier(RetryCallSite.PROMOTE_READ_REPLICA),
                budget.remaining(),
                description=f"promote DB Instance ({resource_id})",
            )
        except CutoverError as exc:
            raise CutoverError(f"promoting DB Instance ({resource_id}): {exc}") from exc

        try:
            self.handler.wait_available(resource_id, budget.remaining())
        except CutoverError as exc:
            raise CutoverError(f"promoting DB Instance ({resource_id}): waiting for completion: {exc}") from exc

    def _modify_in_place(self, change: ResourceChange, budget: DeadlineBudget) -> None:
        request, _ = build_modify_request(change)
        request["apply_immediately"] = bool(change.get("apply_immediately", False))
        if not request["apply_immediately"]:
            logger.info("Only settings updating, instance changes will be applied in next maintenance window")

        if change.has_change("engine_version"):
            request["engine_version"] = change.get("engine_version")
            request["allow_major_version_upgrade"] = bool(change.get("allow_major_version_upgrade", False))
        if change.has_change("parameter_group_name"):
            request["db_parameter_group_name"] = change.get("parameter_group_name")

        try:
            self.handler.modify_instance(change.resource_id, request, budget)
        except CutoverError as exc:
            raise StageError("modifying in place", change.resource_id, exc) from exc

    # ------------------------------------------------------------------ #
    # Delete
    # ------------------------------------------------------------------ #

    def delete_instance(self, config: Mapping[str, Any], timeout: Optional[float] = None) -> Diagnostics:
        """
        Delete the instance described by ``config``.

        ``final_snapshot_identifier`` is required unless ``skip_final_snapshot``
        is set.  A missing instance counts as deleted.
        """
        diagnostics = Diagnostics()
        identifier = str(config.get("identifier") or "")
        if not identifier:
            diagnostics.append_error("configuration has no 'identifier'")
            return diagnostics

        options: Dict[str, Any] = {
            "delete_automated_backups": bool(config.get("delete_automated_backups", True)),
        }
        if config.get("skip_final_snapshot"):
            options["skip_final_snapshot"] = True
        else:
            final_snapshot = config.get("final_snapshot_identifier")
            if not final_snapshot:
                diagnostics.append_error("final_snapshot_identifier is required when skip_final_snapshot is false")
                return diagnostics
            options["skip_final_snapshot"] = False
            options["final_snapshot_identifier"] = final_snapshot

        budget = DeadlineBudget(
            timeout if timeout is not None else self.config.timeouts.delete,
            clock=self._clock,
        )
        logger.info("Deleting DB Instance (%s)", identifier)

        error = self._issue_delete(identifier, options)
        if error is not None and _is_api_error(error, ERR_CODE_INVALID_PARAMETER_COMBINATION, MSG_DISABLE_DELETION_PROTECTION):
            if not config.get("deletion_protection") and config.get("apply_immediately"):
                update_budget = DeadlineBudget(
                    min(self.config.timeouts.update, budget.remaining()),
                    clock=self._clock,
                )
                try:
                    self.handler.disable_deletion_protection(identifier, update_budget)
                except CutoverError as exc:
                    diagnostics.append_error(f"updating DB Instance ({identifier}): {exc}")
                    return diagnostics
                error = self._issue_delete(identifier, options)

        if isinstance(error, NotFoundError):
            logger.info("DB Instance (%s) already gone", identifier)
            return diagnostics
        if error is not None and not _is_api_error(error, ERR_CODE_INVALID_DB_INSTANCE_STATE, MSG_ALREADY_DELETING):
            diagnostics.append_error(f"deleting DB Instance ({identifier}): {error}")
            return diagnostics

        try:
            self.handler.wait_deleted(identifier, budget.remaining())
        except CutoverError as exc:
            diagnostics.append_error(f"waiting for DB Instance ({identifier}) delete: {exc}")
        return diagnostics

    def _issue_delete(self, identifier: str, options: Dict[str, Any]) -> Optional[CutoverError]:
        try:
            self.plane.delete_instance(identifier, **options)
        except CutoverError as exc:
            return exc
        return None
