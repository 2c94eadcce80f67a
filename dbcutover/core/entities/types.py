"""
Common type definitions shared across controllers and actors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from dbcutover.core.entities.resources import InstanceSnapshot


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    summary: str

    def to_dict(self) -> Dict[str, str]:
        return {"severity": self.severity.value, "summary": self.summary}


class Diagnostics:
    """
    Ordered list of diagnostics.

    A primary failure and any cleanup failures are reported side by side;
    nothing appended here ever replaces an earlier entry.
    """

    def __init__(self, items: Optional[List[Diagnostic]] = None):
        self._items: List[Diagnostic] = list(items or [])

    def append(self, severity: Severity, summary: str) -> None:
        self._items.append(Diagnostic(severity, summary))

    def append_error(self, summary: str) -> None:
        self.append(Severity.ERROR, summary)

    def append_warning(self, summary: str) -> None:
        self.append(Severity.WARNING, summary)

    def append_info(self, summary: str) -> None:
        self.append(Severity.INFO, summary)

    def has_error(self) -> bool:
        return any(item.severity is Severity.ERROR for item in self._items)

    def errors(self) -> List[Diagnostic]:
        return [item for item in self._items if item.severity is Severity.ERROR]

    def warnings(self) -> List[Diagnostic]:
        return [item for item in self._items if item.severity is Severity.WARNING]

    def to_list(self) -> List[Dict[str, str]]:
        return [item.to_dict() for item in self._items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Diagnostic:
        return self._items[index]

    def __repr__(self) -> str:
        return f"Diagnostics({self._items!r})"


@dataclass
class CutoverResult:
    """Outcome of one lifecycle transition: final snapshot plus diagnostics."""

    snapshot: Optional[InstanceSnapshot] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    stages: List[str] = field(default_factory=list)
    deployment_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.diagnostics.has_error()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "diagnostics": self.diagnostics.to_list(),
            "stages": list(self.stages),
        }
        if self.deployment_id:
            payload["deployment_id"] = self.deployment_id
        errors = self.diagnostics.errors()
        if errors:
            payload["error"] = errors[0].summary
        return payload
