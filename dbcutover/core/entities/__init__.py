"""
Domain entities used throughout the cutover runtime.
"""

from .resources import (  # noqa: F401
    Deployment,
    InstanceSnapshot,
    ResourceChange,
    instance_arn,
    parse_instance_arn,
)
from .status import DeploymentStatus, InstanceStatus  # noqa: F401
from .types import CutoverResult, Diagnostic, Diagnostics, Severity  # noqa: F401

__all__ = [
    "CutoverResult",
    "Deployment",
    "DeploymentStatus",
    "Diagnostic",
    "Diagnostics",
    "InstanceSnapshot",
    "InstanceStatus",
    "ResourceChange",
    "Severity",
    "instance_arn",
    "parse_instance_arn",
]
