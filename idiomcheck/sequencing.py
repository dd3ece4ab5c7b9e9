"""
idiomcheck.sequencing
=====================

Resource-Statement Sequencer.

Flags argument lists of the shape::

    process(std::shared_ptr<Widget>(new Widget), priority());

The allocation, the handle construction and ``priority()`` are not
sequenced relative to each other; if ``priority()`` throws after ``new``
but before the handle takes ownership, the allocation leaks.  The fix is
to name the handle in a statement of its own (or use ``make_shared`` /
``make_unique``).

This is a shape match on argument expressions, nothing more: a handle
constructed in an earlier statement never produces a finding.
"""

from __future__ import annotations

import logging
from typing import ClassVar, Dict, FrozenSet, List, Optional, Tuple

from idiomcheck.checkers import Checker, CheckerContext, default_rule
from idiomcheck.diagnostics import Severity
from idiomcheck.model import (
    Call,
    CallSite,
    Construct,
    Expr,
    ExprContext,
    FunctionKind,
    FunctionSymbol,
    New,
    iter_body_exprs,
    iter_subexprs,
)

logger = logging.getLogger(__name__)

RULE = "SEQ-unsequenced-ownership"

_OWNING_HANDLES = (
    "std::shared_ptr", "std::unique_ptr", "std::auto_ptr",
    "shared_ptr", "unique_ptr", "auto_ptr",
)
_ALLOCATORS = ("malloc", "calloc", "realloc", "strdup", "fopen")


def _template_name(type_name: str) -> str:
    """``"std::shared_ptr<Widget>"`` → ``"std::shared_ptr"``."""
    return type_name.split("<", 1)[0].strip()


def _full_callee(call: Call) -> str:
    return f"{call.qualifier}::{call.callee}" if call.qualifier else call.callee


class SequencingChecker(Checker):
    """Detects owning handles built from a fresh allocation beside a throwing call."""

    name: ClassVar[str] = "sequencing"
    description: ClassVar[str] = "Unsequenced ownership-handle construction in argument lists"
    rules: ClassVar[Dict] = {
        RULE: default_rule(
            Severity.WARNING,
            owning_handles=_OWNING_HANDLES,
            owning_factories=(),
            allocators=_ALLOCATORS,
        ),
    }

    def __init__(self) -> None:
        super().__init__()
        self._handles: FrozenSet[str] = frozenset()
        self._factories: FrozenSet[str] = frozenset()
        self._allocators: FrozenSet[str] = frozenset()
        # (function, call expression, owning argument, failing sibling)
        self._hits: List[Tuple[FunctionSymbol, Expr, Expr, Expr]] = []

    def configure(self, ctx: CheckerContext) -> None:
        super().configure(ctx)
        setting = self.setting(RULE)
        handles = set(setting.option("owning_handles", _OWNING_HANDLES))
        handles.update(t.name for t in ctx.model.types.values() if t.is_owning_handle)
        self._handles = frozenset(handles)
        self._factories = frozenset(setting.option("owning_factories", ()))
        self._allocators = frozenset(setting.option("allocators", _ALLOCATORS))

    # ----- shape predicates -------------------------------------------------

    def _is_fresh_allocation(self, expr: Expr) -> bool:
        if isinstance(expr, New):
            return True
        return isinstance(expr, Call) and _full_callee(expr) in self._allocators

    def _owns_fresh_allocation(self, expr: Expr) -> bool:
        if isinstance(expr, Construct):
            owning = _template_name(expr.type_name) in self._handles
        elif isinstance(expr, Call):
            owning = _full_callee(expr) in self._factories
        else:
            return False
        return owning and any(self._is_fresh_allocation(a) for a in expr.args)

    def _may_fail(self, ctx: CheckerContext, expr: Expr,
                  sites: Dict[Call, CallSite]) -> bool:
        if isinstance(expr, Call):
            site = sites.get(expr)
            target = ctx.callgraph.target_of(site) if site is not None else None
            return target is None or not target.is_noexcept
        if isinstance(expr, Construct):
            t = ctx.model.type(_template_name(expr.type_name))
            if t is None:
                return True
            ctors = [f for f in t.functions
                     if f.kind is FunctionKind.CONSTRUCTOR and len(f.params) == len(expr.args)]
            return not (ctors and all(f.is_noexcept for f in ctors))
        return isinstance(expr, New)

    # ----- evidence ---------------------------------------------------------

    def _argument_lists(self, fn: FunctionSymbol):
        roots: List[Expr] = [arg for init in fn.initializers for arg in init.args]
        roots.extend(expr for expr, _ctx in iter_body_exprs(fn.body or (), ExprContext()))
        for root in roots:
            for expr in iter_subexprs(root):
                if isinstance(expr, (Call, Construct, New)) and len(expr.args) >= 2:
                    yield expr

    def _unsequenced_pair(
        self,
        ctx: CheckerContext,
        expr: Expr,
        sites: Dict[Call, CallSite],
    ) -> Optional[Tuple[Expr, Expr]]:
        for i, arg in enumerate(expr.args):
            if not self._owns_fresh_allocation(arg):
                continue
            for j, sibling in enumerate(expr.args):
                if j != i and self._may_fail(ctx, sibling, sites):
                    return arg, sibling
        return None

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for fn in ctx.model.iter_functions():
            if not fn.has_body and not fn.initializers:
                continue
            sites = {site.expr: site for site in fn.calls}
            for expr in self._argument_lists(fn):
                pair = self._unsequenced_pair(ctx, expr, sites)
                if pair is not None:
                    self._hits.append((fn, expr, pair[0], pair[1]))

    # ----- diagnosis --------------------------------------------------------

    @staticmethod
    def _describe(expr: Expr) -> str:
        if isinstance(expr, Call):
            return f"{_full_callee(expr)}()"
        if isinstance(expr, (Construct, New)):
            return expr.type_name
        return type(expr).__name__

    def diagnose(self, ctx: CheckerContext) -> None:
        for fn, expr, owning, sibling in self._hits:
            handle = self._describe(owning)
            self._emit(
                RULE,
                f"in '{fn.qualified_name}': '{handle}' takes ownership of a fresh "
                f"allocation in the same argument list of '{self._describe(expr)}' as "
                f"'{self._describe(sibling)}', which may throw before ownership is "
                f"taken; the allocation can leak",
                expr.loc,
                suggested_fix=(
                    f"Create the '{handle}' in its own statement and pass the named "
                    f"handle, or use std::make_shared / std::make_unique"
                ),
            )
        logger.debug("sequencing: %d unsequenced argument list(s) in %s",
                     len(self._hits), ctx.model.unit)


__all__ = ["SequencingChecker", "RULE"]
