"""
Remote resource snapshots and the configuration change view.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

_ARN_DB_RESOURCE = "db"


@dataclass
class InstanceSnapshot:
    """Point-in-time view of a DB instance as described by the control plane."""

    identifier: str
    status: str
    arn: str = ""
    engine: str = ""
    deletion_protection: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "status": self.status,
            "arn": self.arn,
            "engine": self.engine,
            "deletion_protection": self.deletion_protection,
            "attributes": dict(self.attributes),
        }


@dataclass
class Deployment:
    """Control-plane tracking object for one blue/green cutover attempt."""

    identifier: str
    status: str
    source: str = ""
    target: str = ""
    status_details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "status": self.status,
            "source": self.source,
            "target": self.target,
            "status_details": self.status_details,
        }


def instance_arn(identifier: str, *, partition: str = "aws", region: str = "us-east-1", account: str = "000000000000") -> str:
    return f"arn:{partition}:rds:{region}:{account}:{_ARN_DB_RESOURCE}:{identifier}"


def parse_instance_arn(value: str) -> str:
    """
    Extract the DB instance identifier from an instance ARN.

    Expected shape: ``arn:<partition>:rds:<region>:<account>:db:<identifier>``.

    Raises:
        ValueError: if ``value`` is not a DB instance ARN.
    """
    parts = (value or "").split(":")
    if len(parts) != 7 or parts[0] != "arn" or parts[2] != "rds":
        raise ValueError(f"invalid DB instance ARN {value!r}")
    if parts[5] != _ARN_DB_RESOURCE:
        raise ValueError(f"ARN {value!r} does not reference a DB instance (resource type {parts[5]!r})")
    if not parts[6]:
        raise ValueError(f"ARN {value!r} has an empty identifier")
    return parts[6]


_MISSING = object()


class ResourceChange:
    """
    Current/desired configuration pair with change detection.

    Both sides are flat attribute maps.  A key missing on one side and
    present on the other counts as a change.
    """

    def __init__(self, current: Mapping[str, Any], desired: Mapping[str, Any]):
        self.current: Dict[str, Any] = dict(current or {})
        self.desired: Dict[str, Any] = dict(desired or {})

    @property
    def resource_id(self) -> str:
        identifier = self.desired.get("identifier") or self.current.get("identifier")
        if not identifier:
            raise ValueError("configuration has no 'identifier'")
        return str(identifier)

    def get(self, key: str, default: Any = None) -> Any:
        """Desired value for ``key``."""
        return self.desired.get(key, default)

    def get_change(self, key: str, default: Any = None) -> Tuple[Any, Any]:
        return self.current.get(key, default), self.desired.get(key, default)

    def has_change(self, key: str) -> bool:
        return self.current.get(key, _MISSING) != self.desired.get(key, _MISSING)

    def has_changes(self, *keys: str) -> bool:
        return any(self.has_change(key) for key in keys)

    def changed_keys(self) -> List[str]:
        keys = set(self.current) | set(self.desired)
        return sorted(key for key in keys if self.has_change(key))

    def has_changes_except(self, *keys: str) -> bool:
        ignored = set(keys)
        return any(key not in ignored for key in self.changed_keys())

    def __repr__(self) -> str:
        return f"ResourceChange(id={self.desired.get('identifier')!r}, changed={self.changed_keys()})"
