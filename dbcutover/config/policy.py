"""
Retry classification policy definitions and constants.

Each remote call site tolerates its own set of transient conditions.  The
rules below are the built-in defaults; YAML configuration can append more
rules per call site (see :mod:`dbcutover.core.config`).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple, TypedDict


ERR_CODE_INVALID_PARAMETER_VALUE = "InvalidParameterValue"
ERR_CODE_INVALID_PARAMETER_COMBINATION = "InvalidParameterCombination"
ERR_CODE_INVALID_DB_INSTANCE_STATE = "InvalidDBInstanceState"
ERR_CODE_INVALID_DB_CLUSTER_STATE = "InvalidDBClusterStateFault"
ERR_CODE_INVALID_DEPLOYMENT_STATE = "InvalidBlueGreenDeploymentStateFault"

MSG_IAM_ROLE_PROPAGATION = "IAM role ARN value is invalid or does not include the required permissions"
MSG_DISABLE_DELETION_PROTECTION = "disable deletion pro"
MSG_TRY_LATER = "your request later"
MSG_ALREADY_DELETING = "is already being deleted"


class RetryRuleSpec(TypedDict, total=False):
    """A single retryable condition: error code plus optional message fragment."""

    code: str
    message: str


class RetryCallSite(str, Enum):
    """
    Remote call sites that carry their own retry rules.

    Using ``str`` as a mixin keeps YAML keys and enum members interchangeable.
    """

    MODIFY_INSTANCE = "modify_instance"
    DISABLE_DELETION_PROTECTION = "disable_deletion_protection"
    DELETE_INSTANCE = "delete_instance"
    PROMOTE_READ_REPLICA = "promote_read_replica"
    CREATE_DEPLOYMENT = "create_deployment"
    SWITCHOVER = "switchover"
    DELETE_DEPLOYMENT = "delete_deployment"


_IAM_PROPAGATION: RetryRuleSpec = {
    "code": ERR_CODE_INVALID_PARAMETER_VALUE,
    "message": MSG_IAM_ROLE_PROPAGATION,
}


RETRY_RULE_SETS: Dict[RetryCallSite, List[RetryRuleSpec]] = {
    RetryCallSite.MODIFY_INSTANCE: [
        _IAM_PROPAGATION,
        {"code": ERR_CODE_INVALID_DB_CLUSTER_STATE},
    ],
    RetryCallSite.DISABLE_DELETION_PROTECTION: [
        _IAM_PROPAGATION,
        # "RDS is configuring Enhanced Monitoring or Performance Insights for this DB instance. Try your request later."
        {"code": ERR_CODE_INVALID_DB_INSTANCE_STATE, "message": MSG_TRY_LATER},
    ],
    RetryCallSite.DELETE_INSTANCE: [
        _IAM_PROPAGATION,
        {"code": ERR_CODE_INVALID_PARAMETER_COMBINATION, "message": MSG_DISABLE_DELETION_PROTECTION},
    ],
    RetryCallSite.PROMOTE_READ_REPLICA: [],
    RetryCallSite.CREATE_DEPLOYMENT: [],
    RetryCallSite.SWITCHOVER: [
        {"code": ERR_CODE_INVALID_DEPLOYMENT_STATE},
    ],
    RetryCallSite.DELETE_DEPLOYMENT: [],
}


CALL_SITE_ALIASES: Dict[str, str] = {
    "modify": RetryCallSite.MODIFY_INSTANCE.value,
    "disable-deletion-protection": RetryCallSite.DISABLE_DELETION_PROTECTION.value,
    "delete": RetryCallSite.DELETE_INSTANCE.value,
    "promote": RetryCallSite.PROMOTE_READ_REPLICA.value,
    "create-deployment": RetryCallSite.CREATE_DEPLOYMENT.value,
    "delete-deployment": RetryCallSite.DELETE_DEPLOYMENT.value,
}


def resolve_call_site(value: str | RetryCallSite | None) -> Tuple[RetryCallSite | None, str | None]:
    """
    Resolve user input (enum, name, alias) to a :class:`RetryCallSite`.

    Returns:
        ``(site, hint)``; ``site`` is ``None`` when the input is unknown and
        ``hint`` then describes the rejected value.
    """
    if value is None:
        return None, None

    if isinstance(value, RetryCallSite):
        return value, f"enum:{value.name}"

    raw = str(value).strip()
    if not raw:
        return None, None

    normalised = raw.lower()
    alias = CALL_SITE_ALIASES.get(normalised, normalised.replace("-", "_"))
    try:
        return RetryCallSite(alias), f'value="{raw}"'
    except ValueError:
        return None, f'unknown call site "{raw}"'


def default_rules(site: RetryCallSite) -> List[RetryRuleSpec]:
    return [dict(rule) for rule in RETRY_RULE_SETS.get(site, [])]  # type: ignore[misc]


def coerce_rule(raw: object) -> RetryRuleSpec:
    """Validate a rule mapping loaded from YAML."""
    if not isinstance(raw, dict):
        raise ValueError("Each retry rule must be a mapping with a 'code'")
    code = str(raw.get("code", "")).strip()
    if not code:
        raise ValueError("Retry rule requires a non-empty 'code'")
    rule: RetryRuleSpec = {"code": code}
    message: Optional[object] = raw.get("message")
    if message is not None and str(message).strip():
        rule["message"] = str(message)
    return rule
