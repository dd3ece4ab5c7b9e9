"""
idiomcheck/diagnostics.py
═════════════════════════

Finding model shared by every analyzer, the aggregator and the
presentation layer.

A :class:`Finding` is immutable once created.  Its identity for
deduplication is ``(rule_id, location)``; its deterministic sort key is
``(unit, line, column, rule_id, message)``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Severity(Enum):
    """Finding severity levels accepted by the rule configuration."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @classmethod
    def from_string(cls, s: str) -> "Severity":
        """Parse a severity name (case-insensitive); raises ``ValueError``."""
        s_low = s.strip().lower()
        for member in cls:
            if member.value == s_low:
                return member
        raise ValueError(f"unknown severity {s!r}")


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in one unit."""
    unit: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.unit}:{self.line}:{self.column}"
        return f"{self.unit}:{self.line}"

    def to_dict(self) -> Dict[str, Any]:
        return {"unit": self.unit, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class Finding:
    """
    A single finding.

    Attributes
    ----------
    rule_id       : Rule identifier (e.g. ``"CONST-duplicated-overload"``)
    severity      : Severity
    location      : Primary source location
    message       : Human-readable description
    suggested_fix : Optional remediation text
    """
    rule_id: str
    severity: Severity
    location: SourceLocation
    message: str
    suggested_fix: Optional[str] = None

    @property
    def key(self) -> Tuple[str, SourceLocation]:
        """Deduplication identity."""
        return (self.rule_id, self.location)

    @property
    def sort_key(self) -> Tuple[str, int, int, str, str]:
        loc = self.location
        return (loc.unit, loc.line, loc.column, self.rule_id, self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stable output-contract shape."""
        result: Dict[str, Any] = {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "location": self.location.to_dict(),
            "message": self.message,
        }
        if self.suggested_fix:
            result["suggested_fix"] = self.suggested_fix
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string, keys in a fixed order."""
        return json.dumps(self.to_dict())

    def to_gcc_format(self) -> str:
        """GCC-style line: unit:line:col: severity: message [rule]."""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.rule_id}]"


# Rule ids of findings produced by the pipeline itself rather than an analyzer.
MODEL_ERROR_RULE = "MODEL-error"
INTERNAL_ERROR_RULE = "INTERNAL-error"
TIMEOUT_RULE = "UNIT-timeout"


__all__ = [
    "Severity",
    "SourceLocation",
    "Finding",
    "MODEL_ERROR_RULE",
    "INTERNAL_ERROR_RULE",
    "TIMEOUT_RULE",
]
