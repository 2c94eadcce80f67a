"""
Status vocabulary reported by the control plane.

Statuses are owned by the remote side; the orchestrator only compares the
observed strings against the pending/target sets below.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet


class InstanceStatus(str, Enum):
    """DB instance lifecycle statuses."""

    AVAILABLE = "available"
    BACKING_UP = "backing-up"
    CONFIGURING_ENHANCED_MONITORING = "configuring-enhanced-monitoring"
    CONFIGURING_IAM_DATABASE_AUTH = "configuring-iam-database-auth"
    CONFIGURING_LOG_EXPORTS = "configuring-log-exports"
    CREATING = "creating"
    DELETING = "deleting"
    INCOMPATIBLE_PARAMETERS = "incompatible-parameters"
    INCOMPATIBLE_RESTORE = "incompatible-restore"
    MAINTENANCE = "maintenance"
    MODIFYING = "modifying"
    MOVING_TO_VPC = "moving-to-vpc"
    REBOOTING = "rebooting"
    RENAMING = "renaming"
    RESETTING_MASTER_CREDENTIALS = "resetting-master-credentials"
    STARTING = "starting"
    STOPPING = "stopping"
    STORAGE_FULL = "storage-full"
    STORAGE_OPTIMIZATION = "storage-optimization"
    UPGRADING = "upgrading"


class DeploymentStatus(str, Enum):
    """Blue/Green deployment statuses."""

    PROVISIONING = "PROVISIONING"
    AVAILABLE = "AVAILABLE"
    SWITCHOVER_IN_PROGRESS = "SWITCHOVER_IN_PROGRESS"
    SWITCHOVER_COMPLETED = "SWITCHOVER_COMPLETED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    SWITCHOVER_FAILED = "SWITCHOVER_FAILED"
    DELETING = "DELETING"


def _values(*members: Enum) -> FrozenSet[str]:
    return frozenset(member.value for member in members)


INSTANCE_AVAILABLE_PENDING = _values(
    InstanceStatus.BACKING_UP,
    InstanceStatus.CONFIGURING_ENHANCED_MONITORING,
    InstanceStatus.CONFIGURING_IAM_DATABASE_AUTH,
    InstanceStatus.CONFIGURING_LOG_EXPORTS,
    InstanceStatus.CREATING,
    InstanceStatus.MAINTENANCE,
    InstanceStatus.MODIFYING,
    InstanceStatus.MOVING_TO_VPC,
    InstanceStatus.REBOOTING,
    InstanceStatus.RENAMING,
    InstanceStatus.RESETTING_MASTER_CREDENTIALS,
    InstanceStatus.STARTING,
    InstanceStatus.STOPPING,
    InstanceStatus.STORAGE_FULL,
    InstanceStatus.UPGRADING,
)
INSTANCE_AVAILABLE_TARGET = _values(InstanceStatus.AVAILABLE, InstanceStatus.STORAGE_OPTIMIZATION)

INSTANCE_DELETED_PENDING = _values(
    InstanceStatus.AVAILABLE,
    InstanceStatus.BACKING_UP,
    InstanceStatus.CONFIGURING_ENHANCED_MONITORING,
    InstanceStatus.CONFIGURING_LOG_EXPORTS,
    InstanceStatus.CREATING,
    InstanceStatus.DELETING,
    InstanceStatus.INCOMPATIBLE_PARAMETERS,
    InstanceStatus.INCOMPATIBLE_RESTORE,
    InstanceStatus.MODIFYING,
    InstanceStatus.STARTING,
    InstanceStatus.STOPPING,
    InstanceStatus.STORAGE_FULL,
    InstanceStatus.STORAGE_OPTIMIZATION,
)

DEPLOYMENT_AVAILABLE_PENDING = _values(DeploymentStatus.PROVISIONING)
DEPLOYMENT_AVAILABLE_TARGET = _values(DeploymentStatus.AVAILABLE)

DEPLOYMENT_SWITCHOVER_PENDING = _values(DeploymentStatus.AVAILABLE, DeploymentStatus.SWITCHOVER_IN_PROGRESS)
DEPLOYMENT_SWITCHOVER_TARGET = _values(DeploymentStatus.SWITCHOVER_COMPLETED)

# Failure statuses whose status details are more useful than the bare status.
DEPLOYMENT_FAILED_STATES = _values(DeploymentStatus.INVALID_CONFIGURATION, DeploymentStatus.SWITCHOVER_FAILED)

DEPLOYMENT_DELETED_PENDING = _values(*DeploymentStatus)

EMPTY_TARGET: FrozenSet[str] = frozenset()
