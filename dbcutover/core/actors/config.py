"""
Configuration dataclass shared by the cutover actors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class ActorConfig:
    """
    Settings for a pool of cutover actors.

    ``config_path`` points at an orchestration YAML file; ``None`` falls back
    to the regular lookup (``DBCUTOVER_CONFIG``, ``./dbcutover.yaml``, bundled
    defaults).
    """

    name: str
    replicas: int = 1
    metadata: Dict[str, str] = field(default_factory=dict)
    config_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.replicas < 1:
            raise ValueError(f"replicas must be >= 1, got {self.replicas}")

    def replica_name(self, index: int) -> str:
        return f"{self.name}-{index}"
