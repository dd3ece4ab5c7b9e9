# idiomcheck/errors.py
"""
Error types for the idiomcheck pipeline.

Hierarchy
─────────
::

    IdiomCheckError (base)
    ├── ModelError          - incomplete / malformed program representation
    │   └── ParseFailure    - the front-end could not produce a representation
    ├── RuleInternalError   - an analyzer failed on a well-formed model
    ├── AnalysisTimeout     - a unit exceeded its deadline
    └── ConfigError         - invalid rule configuration

``ModelError`` and ``ParseFailure`` skip one unit; ``RuleInternalError`` is
isolated to one analyzer of one unit; ``AnalysisTimeout`` discards one unit's
partial results.  None of them aborts a batch.
"""

from __future__ import annotations

from typing import Optional, Sequence


class IdiomCheckError(Exception):
    """Base exception for all idiomcheck errors."""


class ModelError(IdiomCheckError):
    """The front-end representation of a unit is incomplete or malformed."""

    def __init__(
        self,
        message: str,
        unit: str = "",
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.unit = unit
        self.line = line
        self.column = column

    def __str__(self) -> str:
        if self.unit:
            return f"{self.unit}:{self.line}:{self.column}: {self.message}"
        return self.message


class ParseFailure(ModelError):
    """Raised by a front-end that cannot turn source text into a representation."""


class RuleInternalError(IdiomCheckError):
    """An analyzer failed unexpectedly on a well-formed model."""

    def __init__(
        self,
        analyzer: str,
        cause: Optional[BaseException] = None,
        rules: Sequence[str] = (),
    ) -> None:
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown failure"
        scope = f" ({', '.join(rules)})" if rules else ""
        super().__init__(f"analyzer '{analyzer}'{scope} failed: {detail}")
        self.analyzer = analyzer
        self.cause = cause
        self.rules = tuple(rules)


class AnalysisTimeout(IdiomCheckError):
    """A unit did not finish within its configured deadline."""

    def __init__(self, unit: str, timeout: float) -> None:
        super().__init__(f"analysis of '{unit}' exceeded {timeout:g}s")
        self.unit = unit
        self.timeout = timeout


class ConfigError(IdiomCheckError):
    """Rule configuration is invalid."""


__all__ = [
    "IdiomCheckError",
    "ModelError",
    "ParseFailure",
    "RuleInternalError",
    "AnalysisTimeout",
    "ConfigError",
]
