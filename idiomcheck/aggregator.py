"""
idiomcheck/aggregator.py
════════════════════════

Diagnostics Aggregator.

Joins the per-analyzer finding lists of one unit into a single ordered,
deduplicated sequence, and combines unit results into a batch result.

Ordering
────────
Findings are sorted by ``(unit, line, column, rule_id, message)``.  When
two findings share ``(rule_id, location)`` only the first in that order is
kept.  Both steps depend only on the findings themselves, so the output
is identical across runs regardless of the order analyzers finished in.

Pipeline findings
─────────────────
Unit-level failures are reported as findings too, so a presentation layer
needs only one code path:

  ``MODEL-error``     the unit's representation was rejected (unit skipped)
  ``INTERNAL-error``  one analyzer failed; the others' findings are kept
  ``UNIT-timeout``    the unit exceeded its deadline (findings discarded)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from idiomcheck.diagnostics import (
    INTERNAL_ERROR_RULE,
    MODEL_ERROR_RULE,
    TIMEOUT_RULE,
    Finding,
    Severity,
    SourceLocation,
)
from idiomcheck.errors import AnalysisTimeout, ModelError, RuleInternalError

logger = logging.getLogger(__name__)


class SkipReason(Enum):
    MODEL_ERROR = "model-error"
    TIMEOUT = "timeout"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — ORDERING
# ═════════════════════════════════════════════════════════════════════════

def order_findings(findings: Iterable[Finding]) -> Tuple[Finding, ...]:
    """Sort *findings* deterministically and drop duplicate ``(rule_id, location)``."""
    seen = set()
    result: List[Finding] = []
    for f in sorted(findings, key=lambda f: f.sort_key):
        if f.key in seen:
            continue
        seen.add(f.key)
        result.append(f)
    return tuple(result)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — UNIT RESULTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class UnitResult:
    """
    Outcome of analyzing one unit.

    Attributes
    ----------
    unit            : unit path
    findings        : ordered, deduplicated findings (pipeline findings included)
    skip_reason     : set when the unit produced no analyzer findings at all
    detail          : human-readable reason accompanying ``skip_reason``
    internal_errors : analyzers that failed on this unit
    stats           : timing / size figures for logging and summaries
    """
    unit: str
    findings: Tuple[Finding, ...] = ()
    skip_reason: Optional[SkipReason] = None
    detail: str = ""
    internal_errors: Tuple[RuleInternalError, ...] = ()
    stats: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.severity is Severity.ERROR)


def aggregate_unit(
    unit: str,
    outputs: Iterable[Sequence[Finding]],
    internal_errors: Sequence[RuleInternalError] = (),
    stats: Optional[Dict[str, Any]] = None,
) -> UnitResult:
    """Merge the finding lists of every analyzer that ran on *unit*.

    Each failed analyzer contributes one ``INTERNAL-error`` finding naming
    it; the findings of the analyzers that succeeded are kept.
    """
    merged: List[Finding] = [f for out in outputs for f in out]
    for err in internal_errors:
        merged.append(Finding(
            rule_id=INTERNAL_ERROR_RULE,
            severity=Severity.ERROR,
            location=SourceLocation(unit, 0, 0),
            message=str(err),
        ))
    return UnitResult(
        unit=unit,
        findings=order_findings(merged),
        internal_errors=tuple(internal_errors),
        stats=dict(stats or {}),
    )


def model_error_result(unit: str, error: ModelError) -> UnitResult:
    """Result for a unit whose representation was rejected."""
    finding = Finding(
        rule_id=MODEL_ERROR_RULE,
        severity=Severity.ERROR,
        location=SourceLocation(error.unit or unit, error.line, error.column),
        message=f"unit skipped: {error.message}",
    )
    return UnitResult(
        unit=unit,
        findings=(finding,),
        skip_reason=SkipReason.MODEL_ERROR,
        detail=error.message,
    )


def timeout_result(unit: str, error: AnalysisTimeout) -> UnitResult:
    """Result for a unit whose deadline expired; partial findings are dropped."""
    finding = Finding(
        rule_id=TIMEOUT_RULE,
        severity=Severity.WARNING,
        location=SourceLocation(unit, 0, 0),
        message=f"unit skipped: {error}",
    )
    return UnitResult(
        unit=unit,
        findings=(finding,),
        skip_reason=SkipReason.TIMEOUT,
        detail=str(error),
    )


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — BATCH RESULTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of a batch, units ordered by path.

    Attributes
    ----------
    units    : UnitResult per unit
    findings : all findings, in unit order
    """
    units: Tuple[UnitResult, ...] = ()

    @property
    def findings(self) -> Tuple[Finding, ...]:
        return tuple(f for u in self.units for f in u.findings)

    @property
    def skipped(self) -> Dict[str, str]:
        """Skipped unit path → reason (``"<kind>: <detail>"``)."""
        return {
            u.unit: f"{u.skip_reason.value}: {u.detail}"
            for u in self.units if u.skip_reason is not None
        }

    @property
    def analyzed(self) -> Tuple[UnitResult, ...]:
        return tuple(u for u in self.units if not u.skipped)

    @property
    def error_count(self) -> int:
        return sum(u.error_count for u in self.units)

    def count_by_severity(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for f in self.findings:
            counts[f.severity.value] += 1
        return counts

    def summary(self) -> str:
        """Human-readable summary."""
        counts = self.count_by_severity()
        lines = [
            f"{len(self.units)} unit(s): {len(self.analyzed)} analyzed, "
            f"{len(self.skipped)} skipped; {len(self.findings)} finding(s) "
            f"({counts['error']} errors, {counts['warning']} warnings, "
            f"{counts['info']} info)",
        ]
        for unit, reason in self.skipped.items():
            lines.append(f"  skipped {unit}: {reason}")
        for u in self.units:
            for err in u.internal_errors:
                lines.append(f"  {u.unit}: {err}")
        return "\n".join(lines)


def merge_batch(results: Iterable[UnitResult]) -> BatchResult:
    """Combine unit results into a :class:`BatchResult` ordered by unit path."""
    ordered = tuple(sorted(results, key=lambda r: r.unit))
    for r in ordered:
        if r.skipped:
            logger.warning("Skipped %s (%s)", r.unit, r.detail)
    return BatchResult(units=ordered)


__all__ = [
    "SkipReason",
    "UnitResult",
    "BatchResult",
    "order_findings",
    "aggregate_unit",
    "model_error_result",
    "timeout_result",
    "merge_batch",
]
