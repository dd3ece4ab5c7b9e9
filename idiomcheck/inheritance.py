"""
idiomcheck.inheritance
======================

Inheritance & Substitutability Analyzer.

Public inheritance claims *is-a*: every derived instance must be usable
wherever the base is expected.  Behavioural substitutability is not
decidable, so this checker is restricted to two patterns:

``unconditional-failure``
    An override whose body signals failure on every path (top-level
    ``throw``, call to an abort-like function, or a call through ``this``
    to a helper that does so) while the base declares no such contract.
    The classic ``Penguin::fly`` case.

``coupled-setters``
    An override of one setter of a pair the base treats as independently
    settable (neither calls the other, disjoint member writes) that calls
    the other setter or writes the other's state.  The classic
    ``Square::setWidth`` case.

Only ``public`` edges are checked; protected / private inheritance is
implementation reuse, not an is-a claim.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import ClassVar, Dict, FrozenSet, List, Optional, Set, Tuple

from idiomcheck.checkers import Checker, CheckerContext, default_rule
from idiomcheck.config import RuleSetting
from idiomcheck.diagnostics import Severity
from idiomcheck.errors import ConfigError
from idiomcheck.model import (
    Call,
    CallSite,
    ExprStmt,
    FunctionSymbol,
    InheritanceEdge,
    SemanticModel,
    Throw,
    unconditional_statements,
)

logger = logging.getLogger(__name__)

RULE = "INHERIT-violation"

PATTERN_FAILURE = "unconditional-failure"
PATTERN_SETTERS = "coupled-setters"

_ABORT_FUNCTIONS = (
    "abort", "std::abort", "terminate", "std::terminate",
    "exit", "std::exit", "_Exit", "std::_Exit",
    "quick_exit", "std::quick_exit",
)


def _via_this(site: CallSite) -> bool:
    return site.via_this


def _full_callee(call: Call) -> str:
    return f"{call.qualifier}::{call.callee}" if call.qualifier else call.callee


def _visible_virtuals(model: SemanticModel, type_name: str) -> List[FunctionSymbol]:
    """Virtual functions *type_name* declares or inherits, nearest declaration first."""
    seen: Set[Tuple] = set()
    result: List[FunctionSymbol] = []
    for tn in model.lineage(type_name):
        t = model.type(tn)
        if t is None:
            continue
        for fn in t.virtual_functions:
            if fn.is_special or fn.signature in seen:
                continue
            seen.add(fn.signature)
            result.append(fn)
    return result


@dataclass(frozen=True)
class _Violation:
    edge: InheritanceEdge
    base_fn: FunctionSymbol
    override: FunctionSymbol
    pattern: str
    detail: str


class InheritanceChecker(Checker):
    """Detects public-inheritance overrides that break the base contract."""

    name: ClassVar[str] = "inheritance"
    description: ClassVar[str] = "Substitutability of public inheritance"
    rules: ClassVar[Dict] = {
        RULE: default_rule(
            Severity.WARNING,
            patterns=(PATTERN_FAILURE, PATTERN_SETTERS),
            abort_functions=_ABORT_FUNCTIONS,
            setter_pattern=r"^set[A-Z_]",
        ),
    }

    def __init__(self) -> None:
        super().__init__()
        self._violations: List[_Violation] = []
        self._abort: FrozenSet[str] = frozenset()
        self._setter_re = re.compile(r"^set[A-Z_]")
        self._patterns: FrozenSet[str] = frozenset()

    @classmethod
    def check_options(cls, rule_id: str, setting: RuleSetting) -> None:
        unknown = set(setting.option("patterns", ())) - {PATTERN_FAILURE, PATTERN_SETTERS}
        if unknown:
            raise ConfigError(f"{rule_id}: unknown patterns {sorted(unknown)}")
        try:
            re.compile(setting.option("setter_pattern", r"^set[A-Z_]"))
        except re.error as exc:
            raise ConfigError(f"{rule_id}: invalid setter_pattern: {exc}") from exc

    def configure(self, ctx: CheckerContext) -> None:
        super().configure(ctx)
        setting = self.setting(RULE)
        self._patterns = frozenset(setting.option("patterns", ()))
        self._abort = frozenset(setting.option("abort_functions", _ABORT_FUNCTIONS))
        self._setter_re = re.compile(setting.option("setter_pattern", r"^set[A-Z_]"))

    # ----- evidence ---------------------------------------------------------

    def collect_evidence(self, ctx: CheckerContext) -> None:
        model = ctx.model
        for edge in model.edges:
            if not edge.is_public:
                continue
            if model.type(edge.base) is None:
                continue
            if PATTERN_FAILURE in self._patterns:
                for base_fn in _visible_virtuals(model, edge.base):
                    override = model.override_in(edge.derived, base_fn)
                    if override is None or not override.has_body:
                        continue
                    reason = self._failure_reason(ctx, override, set())
                    if reason and not self._base_declares_failure(ctx, base_fn):
                        self._violations.append(
                            _Violation(edge, base_fn, override, PATTERN_FAILURE, reason)
                        )
            if PATTERN_SETTERS in self._patterns:
                self._collect_coupled_setters(ctx, edge)

    def _failure_reason(
        self,
        ctx: CheckerContext,
        fn: FunctionSymbol,
        visited: Set[str],
    ) -> Optional[str]:
        """Why *fn* fails on every path, or ``None`` if it may not."""
        if fn.body is None or fn.id in visited:
            return None
        visited.add(fn.id)
        sites = {site.expr: site for site in fn.calls}
        for stmt in unconditional_statements(fn.body):
            if isinstance(stmt, Throw):
                return "throws unconditionally"
            if isinstance(stmt, ExprStmt) and isinstance(stmt.expr, Call):
                full = _full_callee(stmt.expr)
                if full in self._abort:
                    return f"calls {full}() unconditionally"
                site = sites.get(stmt.expr)
                if site is None or not site.via_this:
                    continue
                target = ctx.callgraph.target_of(site)
                if target is None:
                    continue
                inner = self._failure_reason(ctx, target, visited)
                if inner:
                    return f"calls {target.qualified_name}(), which {inner}"
        return None

    def _base_declares_failure(self, ctx: CheckerContext, base_fn: FunctionSymbol) -> bool:
        if base_fn.declared_throws and not base_fn.is_noexcept:
            return True
        return self._failure_reason(ctx, base_fn, set()) is not None

    # ----- coupled setters --------------------------------------------------

    def _is_setter(self, fn: FunctionSymbol) -> bool:
        return (not fn.is_const and len(fn.params) == 1
                and self._setter_re.search(fn.name) is not None)

    def _writes(self, ctx: CheckerContext, fn: Optional[FunctionSymbol]) -> Set[Tuple[str, str]]:
        if fn is None:
            return set()
        return {
            (w.owner, w.member)
            for f in ctx.callgraph.reachable(fn, follow=_via_this)
            for w in f.writes
        }

    def _calls(self, ctx: CheckerContext, fn: FunctionSymbol, other: FunctionSymbol) -> bool:
        return ctx.callgraph.calls_transitively(fn, other.name, follow=_via_this)

    def _independent(self, ctx: CheckerContext, s: FunctionSymbol, t: FunctionSymbol) -> bool:
        if self._calls(ctx, s, t) or self._calls(ctx, t, s):
            return False
        return not (self._writes(ctx, s) & self._writes(ctx, t))

    def _collect_coupled_setters(self, ctx: CheckerContext, edge: InheritanceEdge) -> None:
        model = ctx.model
        setters = [f for f in _visible_virtuals(model, edge.base) if self._is_setter(f)]
        if len(setters) < 2:
            return
        for s in setters:
            override = model.override_in(edge.derived, s)
            if override is None or not override.has_body:
                continue
            for t in setters:
                if t is s or not self._independent(ctx, s, t):
                    continue
                detail = None
                if self._calls(ctx, override, t):
                    detail = f"calls {t.name}()"
                else:
                    t_state = self._writes(ctx, t) | self._writes(
                        ctx, model.override_in(edge.derived, t)
                    )
                    shared = self._writes(ctx, override) & t_state
                    if shared:
                        names = ", ".join(sorted(f"{o}::{m}" for o, m in shared))
                        detail = f"writes {names}, which {t.name}() sets"
                if detail:
                    self._violations.append(
                        _Violation(edge, s, override, PATTERN_SETTERS,
                                   f"{detail}; {edge.base} treats {s.name}() and "
                                   f"{t.name}() as independently settable")
                    )
                    break

    # ----- diagnosis --------------------------------------------------------

    def diagnose(self, ctx: CheckerContext) -> None:
        for v in self._violations:
            base, derived = v.edge.base, v.edge.derived
            if v.pattern == PATTERN_FAILURE:
                message = (
                    f"'{v.override.qualified_name}' overrides '{v.base_fn.display_name}' "
                    f"but {v.detail}; '{base}' declares no such failure contract, so "
                    f"public inheritance claims '{derived}' is-a '{base}' falsely"
                )
                fix = (
                    f"Declare the failure in '{v.base_fn.qualified_name}''s contract, or move "
                    f"'{v.base_fn.name}' out of '{base}' into a subtype '{derived}' does not "
                    f"derive from"
                )
            else:
                message = (
                    f"'{v.override.qualified_name}' overrides '{v.base_fn.display_name}' "
                    f"but {v.detail}; '{derived}' is not substitutable for '{base}'"
                )
                fix = (
                    f"Do not derive '{derived}' publicly from '{base}'; prefer composition "
                    f"or a common abstract base without independent setters"
                )
            self._emit(RULE, message, v.override.loc, suggested_fix=fix)
        logger.debug("inheritance: %d violation(s) in %s",
                     len(self._violations), ctx.model.unit)


__all__ = ["InheritanceChecker", "RULE", "PATTERN_FAILURE", "PATTERN_SETTERS"]
