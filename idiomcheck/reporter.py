"""
idiomcheck/reporter.py
══════════════════════

Presentation of a :class:`~idiomcheck.aggregator.BatchResult`.

Formats
───────
  text  — one header line per finding plus an optional ``help`` line,
          coloured with termcolor when requested
  json  — one JSON object per line (``Finding.to_dict`` shape)
  gcc   — ``unit:line:col: severity: message [rule]``

Every format is a pure function of the batch, so output is byte-identical
across runs on unchanged input.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from termcolor import colored

from idiomcheck.aggregator import BatchResult
from idiomcheck.diagnostics import Finding, Severity

_SEVERITY_COLOR: Dict[Severity, str] = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


def _paint(text: str, color: bool, fg: Optional[str] = None,
           attrs: Optional[List[str]] = None) -> str:
    if not color:
        return text
    return colored(text, fg, attrs=attrs, force_color=True)


def _render_text(f: Finding, color: bool) -> List[str]:
    sev = _paint(f"{f.severity.value}[{f.rule_id}]", color,
                 _SEVERITY_COLOR[f.severity], attrs=["bold"])
    lines = [f"{f.location}: {sev}: {f.message}"]
    if f.suggested_fix:
        prefix = _paint("help", color, "green", attrs=["bold"])
        lines.append(f"  = {prefix}: {f.suggested_fix}")
    return lines


def format_text(batch: BatchResult, color: bool = False, summary: bool = True) -> str:
    lines: List[str] = []
    for f in batch.findings:
        lines.extend(_render_text(f, color))
    if summary:
        if lines:
            lines.append("")
        text = batch.summary()
        lines.append(_paint(text, color, attrs=["dark"]))
    return "\n".join(lines)


def format_json_lines(batch: BatchResult, color: bool = False) -> str:
    """One JSON object per finding; *color* is ignored."""
    return "\n".join(f.to_json_str() for f in batch.findings)


def format_gcc(batch: BatchResult, color: bool = False) -> str:
    """GCC-style lines; *color* is ignored."""
    return "\n".join(f.to_gcc_format() for f in batch.findings)


FORMATTERS: Dict[str, Callable[..., str]] = {
    "text": format_text,
    "json": format_json_lines,
    "gcc": format_gcc,
}


__all__ = ["format_text", "format_json_lines", "format_gcc", "FORMATTERS"]
