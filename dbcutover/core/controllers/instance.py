"""
DB instance helpers shared by the blue/green orchestrator and the
lifecycle service: eligibility checks, request building, modify/delete with
retry, and the instance wait points.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional, Tuple

from dbcutover.config.policy import RetryCallSite
from dbcutover.core.config import OrchestrationConfig, get_orchestration_config
from dbcutover.core.control_plane import ControlPlane, instance_status_fetch
from dbcutover.core.engine.deadline import DeadlineBudget
from dbcutover.core.engine.retry import ErrorClassifier, RetryRunner
from dbcutover.core.engine.waiter import StateWaiter, build_wait_spec
from dbcutover.core.entities.resources import InstanceSnapshot, ResourceChange
from dbcutover.core.entities.status import (
    EMPTY_TARGET,
    INSTANCE_AVAILABLE_PENDING,
    INSTANCE_AVAILABLE_TARGET,
    INSTANCE_DELETED_PENDING,
)
from dbcutover.core.errors import PreconditionError

logger = logging.getLogger(__name__)

STORAGE_TYPE_IO1 = "io1"

# Attributes copied one-to-one into the modify request when they change.
_SIMPLE_MODIFY_FIELDS: Dict[str, str] = {
    "auto_minor_version_upgrade": "auto_minor_version_upgrade",
    "backup_retention_period": "backup_retention_period",
    "backup_window": "preferred_backup_window",
    "copy_tags_to_snapshot": "copy_tags_to_snapshot",
    "ca_cert_identifier": "ca_certificate_identifier",
    "customer_owned_ip_enabled": "enable_customer_owned_ip",
    "db_subnet_group_name": "db_subnet_group_name",
    "iam_database_authentication_enabled": "enable_iam_database_authentication",
    "instance_class": "db_instance_class",
    "license_model": "license_model",
    "maintenance_window": "preferred_maintenance_window",
    "monitoring_interval": "monitoring_interval",
    "monitoring_role_arn": "monitoring_role_arn",
    "multi_az": "multi_az",
    "network_type": "network_type",
    "option_group_name": "option_group_name",
    "password": "master_user_password",
    "port": "db_port_number",
    "publicly_accessible": "publicly_accessible",
    "replica_mode": "replica_mode",
    "storage_throughput": "storage_throughput",
}


def build_modify_request(change: ResourceChange) -> Tuple[Dict[str, Any], bool]:
    """
    Translate changed attributes into modify request fields.

    Returns:
        ``(request, needs_modify)``.  ``deletion_protection`` is always part
        of the request; it only counts as a modification when it changed.
    """
    request: Dict[str, Any] = {}
    needs_modify = False

    if change.has_changes("allocated_storage", "iops"):
        needs_modify = True
        request["allocated_storage"] = change.get("allocated_storage")
        request["iops"] = change.get("iops")

    for attribute, field_name in _SIMPLE_MODIFY_FIELDS.items():
        if change.has_change(attribute):
            needs_modify = True
            request[field_name] = change.get(attribute)

    if change.has_change("deletion_protection"):
        needs_modify = True
    request["deletion_protection"] = bool(change.get("deletion_protection", False))

    if change.has_changes("domain", "domain_iam_role_name"):
        needs_modify = True
        request["domain"] = change.get("domain", "")
        request["domain_iam_role_name"] = change.get("domain_iam_role_name", "")

    if change.has_change("enabled_cloudwatch_logs_exports"):
        needs_modify = True
        old, new = change.get_change("enabled_cloudwatch_logs_exports")
        old_set, new_set = set(old or ()), set(new or ())
        request["cloudwatch_logs_export_configuration"] = {
            "enable_log_types": sorted(new_set - old_set),
            "disable_log_types": sorted(old_set - new_set),
        }

    if change.has_change("max_allocated_storage"):
        needs_modify = True
        value = change.get("max_allocated_storage") or 0
        # Disabling storage autoscaling means max == allocated.
        if value == 0:
            value = change.get("allocated_storage")
        request["max_allocated_storage"] = value

    if change.has_changes(
        "performance_insights_enabled",
        "performance_insights_kms_key_id",
        "performance_insights_retention_period",
    ):
        needs_modify = True
        request["enable_performance_insights"] = bool(change.get("performance_insights_enabled", False))
        if change.get("performance_insights_kms_key_id"):
            request["performance_insights_kms_key_id"] = change.get("performance_insights_kms_key_id")
        if change.get("performance_insights_retention_period"):
            request["performance_insights_retention_period"] = change.get("performance_insights_retention_period")

    if change.has_change("security_group_names") and change.get("security_group_names"):
        needs_modify = True
        request["db_security_groups"] = sorted(change.get("security_group_names"))

    if change.has_change("storage_type"):
        needs_modify = True
        request["storage_type"] = change.get("storage_type")
        if request["storage_type"] == STORAGE_TYPE_IO1:
            request["iops"] = change.get("iops")

    if change.has_change("vpc_security_group_ids") and change.get("vpc_security_group_ids"):
        needs_modify = True
        request["vpc_security_group_ids"] = sorted(change.get("vpc_security_group_ids"))

    return request, needs_modify


class InstanceHandler:
    """Resource-level operations against one kind of remote resource: DB instances."""

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
        self.waiter = StateWaiter(clock=clock, sleep=sleep)
        self.runner = RetryRunner(backoff=self.config.retry.backoff, clock=clock, sleep=sleep)

    def classifier(self, site: RetryCallSite) -> ErrorClassifier:
        return ErrorClassifier.for_call_site(site, self.config.extra_rules(site))

    # ------------------------------------------------------------------ #
    # Wait points
    # ------------------------------------------------------------------ #

    def wait_available(
        self,
        identifier: str,
        timeout: float,
        *,
        settle_delay: Optional[float] = None,
    ) -> Optional[InstanceSnapshot]:
        spec = build_wait_spec(
            INSTANCE_AVAILABLE_PENDING,
            INSTANCE_AVAILABLE_TARGET,
            timeout,
            self.config.instance_waiter,
            settle_delay=settle_delay,
        )
        return self.waiter.wait(
            instance_status_fetch(self.plane, identifier),
            spec,
            resource=f"DB Instance ({identifier})",
        )

    def wait_deleted(self, identifier: str, timeout: float, *, settle_delay: Optional[float] = None) -> None:
        spec = build_wait_spec(
            INSTANCE_DELETED_PENDING,
            EMPTY_TARGET,
            timeout,
            self.config.instance_waiter,
            settle_delay=settle_delay,
        )
        self.waiter.wait(
            instance_status_fetch(self.plane, identifier),
            spec,
            resource=f"DB Instance ({identifier})",
        )

    # ------------------------------------------------------------------ #
    # Blue/green eligibility and requests
    # ------------------------------------------------------------------ #

    def validate_blue_green(self, change: ResourceChange) -> None:
        """Raise :class:`PreconditionError` when a blue/green update is not allowed."""
        engine = str(change.get("engine", "") or "").lower()
        if engine not in self.config.blue_green_engines:
            raise PreconditionError(f'"blue_green_update.enabled" cannot be set when "engine" is "{engine}".')
        if change.get("replicate_source_db"):
            raise PreconditionError('"blue_green_update.enabled" cannot be set when "replicate_source_db" is set.')

    def precondition(self, change: ResourceChange, budget: DeadlineBudget) -> None:
        """
        Validate eligibility, then bring the source (blue) instance into a
        shape the deployment can be created from.

        Backups must be enabled for blue/green deployments, so a 0 → N
        retention change is applied to the source first, together with any
        deletion protection change.
        """
        self.validate_blue_green(change)

        request: Dict[str, Any] = {}
        old_retention, new_retention = change.get_change("backup_retention_period", 0)
        if not old_retention and new_retention:
            request["backup_retention_period"] = new_retention
        if change.has_change("deletion_protection"):
            request["deletion_protection"] = bool(change.get("deletion_protection", False))

        if request:
            request["apply_immediately"] = True
            logger.info("Applying pre-conditions to DB Instance (%s): %s", change.resource_id, sorted(request))
            self.modify_instance(change.resource_id, request, budget)

    def create_deployment_request(self, change: ResourceChange, source_arn: str) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "name": f"dbcutover-{uuid.uuid4().hex[:12]}",
            "source": source_arn,
        }
        if change.has_change("engine_version"):
            request["target_engine_version"] = change.get("engine_version")
        if change.has_change("parameter_group_name"):
            request["target_db_parameter_group_name"] = change.get("parameter_group_name")
        return request

    def source_arn(self, change: ResourceChange) -> str:
        arn = change.current.get("arn") or change.desired.get("arn")
        if arn:
            return str(arn)
        return self.plane.describe_instance(change.resource_id).arn

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def modify_instance(
        self,
        identifier: str,
        request: Dict[str, Any],
        budget: DeadlineBudget,
        *,
        site: RetryCallSite = RetryCallSite.MODIFY_INSTANCE,
    ) -> Optional[InstanceSnapshot]:
        """Modify with retry, then wait for the instance to be available again."""
        self.runner.run(
            lambda: self.plane.modify_instance(identifier, request),
            self.classifier(site),
            budget.remaining(),
            description=f"modify DB Instance ({identifier})",
        )
        return self.wait_available(identifier, budget.remaining())

    def modify_target(self, identifier: str, change: ResourceChange, budget: DeadlineBudget) -> bool:
        """Apply the requested attribute changes to the green instance only."""
        request, needs_modify = build_modify_request(change)
        if not needs_modify:
            logger.debug("No attribute changes to apply to green DB Instance (%s)", identifier)
            return False
        request["apply_immediately"] = True
        logger.info("Modifying green DB Instance (%s): %s", identifier, sorted(request))
        self.modify_instance(identifier, request, budget)
        return True

    def disable_deletion_protection(self, identifier: str, budget: DeadlineBudget) -> None:
        logger.info("Disabling deletion protection on DB Instance (%s)", identifier)
        self.modify_instance(
            identifier,
            {"apply_immediately": True, "deletion_protection": False},
            budget,
            site=RetryCallSite.DISABLE_DELETION_PROTECTION,
        )

    def delete_with_retry(self, identifier: str, timeout: float) -> None:
        """Issue delete (no final snapshot), retrying IAM propagation and protection races."""
        self.runner.run(
            lambda: self.plane.delete_instance(identifier, skip_final_snapshot=True),
            self.classifier(RetryCallSite.DELETE_INSTANCE),
            timeout,
            description=f"delete DB Instance ({identifier})",
        )
