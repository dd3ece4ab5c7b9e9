"""
idiomcheck — static checker for C++ correctness idioms
======================================================

Consumes the structured program representation of a translation unit
(types, members, functions, inheritance edges, function bodies) and
reports violations of four idioms:

inheritance
    Public inheritance must be substitutable (``INHERIT-violation``).
constness
    Const member functions must preserve logical constness, and
    const / non-const overload pairs must not duplicate logic
    (``CONST-*``).
construction
    Virtual calls during construction/destruction never reach a
    more-derived override (``CTOR-VCALL-*``).
sequencing
    An owning handle built from a fresh allocation must not share an
    argument list with another throwing call
    (``SEQ-unsequenced-ownership``).

Quick start
-----------
>>> from idiomcheck import analyze_unit
>>> result = analyze_unit(representation)
>>> for finding in result.findings:
...     print(finding.to_gcc_format())

Package layout
--------------
::

    idiomcheck/
    ├── __init__.py            ← this file
    ├── model.py               symbols, statements, SemanticModel
    ├── builder.py             representation → SemanticModel
    ├── callgraph.py           per-unit call graph, Tarjan SCC
    ├── checkers.py            Checker base class and registry
    ├── inheritance.py
    ├── constness.py
    ├── construction.py
    ├── sequencing.py
    ├── aggregator.py          ordering, dedup, unit/batch results
    ├── runner.py              concurrency, timeouts, batch driver
    ├── frontend.py            FrontEnd protocol, JsonFrontEnd
    ├── reporter.py            text / json / gcc output
    └── main.py                command line
"""

from __future__ import annotations

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from idiomcheck.aggregator import BatchResult, UnitResult  # noqa: E402
from idiomcheck.builder import build_model  # noqa: E402
from idiomcheck.config import DEFAULT_CONFIG, RuleConfig, RuleSetting  # noqa: E402
from idiomcheck.diagnostics import Finding, Severity, SourceLocation  # noqa: E402
from idiomcheck.errors import (  # noqa: E402
    AnalysisTimeout,
    ConfigError,
    IdiomCheckError,
    ModelError,
    ParseFailure,
    RuleInternalError,
)
from idiomcheck.frontend import FrontEnd, JsonFrontEnd  # noqa: E402
from idiomcheck.runner import analyze_batch, analyze_model, analyze_unit  # noqa: E402

__all__ = [
    "__version__",
    "analyze_unit",
    "analyze_model",
    "analyze_batch",
    "build_model",
    "BatchResult",
    "UnitResult",
    "Finding",
    "Severity",
    "SourceLocation",
    "RuleConfig",
    "RuleSetting",
    "DEFAULT_CONFIG",
    "FrontEnd",
    "JsonFrontEnd",
    "IdiomCheckError",
    "ModelError",
    "ParseFailure",
    "RuleInternalError",
    "AnalysisTimeout",
    "ConfigError",
]
