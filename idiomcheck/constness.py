"""
idiomcheck.constness
====================

Const-Correctness Analyzer.

Two checks per type:

* **Logical-constness misuse** — every member write reachable from a
  const member function (its own body plus callees through ``this``)
  must target a ``mutable`` member (``CONST-bitwise-violation``).  Writes
  to ``mutable`` members are accepted only in caching shape: the write is
  guarded by a condition, is not inside a loop, and the member is read
  somewhere.  Anything else is ``CONST-suspicious-mutable``.

* **Duplicate-logic detection** — when a const / non-const overload pair
  exists, the non-const body must be the single delegating statement::

      return const_cast<R&>(static_cast<const T&>(*this).f(args...));

  anything else duplicates the const logic (``CONST-duplicated-overload``).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import ClassVar, Dict, List, Optional, Set, Tuple

from idiomcheck.checkers import Checker, CheckerContext, default_rule
from idiomcheck.diagnostics import Severity, SourceLocation
from idiomcheck.model import (
    Block,
    Call,
    Cast,
    ExprStmt,
    FunctionSymbol,
    MemberAccess,
    NameRef,
    Return,
    Stmt,
    TypeSymbol,
    is_const_qualified,
    this_view,
)

logger = logging.getLogger(__name__)

RULE_BITWISE = "CONST-bitwise-violation"
RULE_MUTABLE = "CONST-suspicious-mutable"
RULE_DUPLICATE = "CONST-duplicated-overload"


def _flatten(body: Tuple[Stmt, ...]) -> List[Stmt]:
    out: List[Stmt] = []
    for stmt in body:
        if isinstance(stmt, Block):
            out.extend(_flatten(stmt.body))
        else:
            out.append(stmt)
    return out


class ConstnessChecker(Checker):
    """Detects constness-qualifier misuse and duplicated const/non-const logic."""

    name: ClassVar[str] = "constness"
    description: ClassVar[str] = "Bitwise vs. logical constness and overload duplication"
    rules: ClassVar[Dict] = {
        RULE_BITWISE: default_rule(Severity.ERROR),
        RULE_MUTABLE: default_rule(Severity.INFO),
        RULE_DUPLICATE: default_rule(Severity.WARNING),
    }

    def __init__(self) -> None:
        super().__init__()
        # (const function, reached function, write)
        self._const_writes: List[Tuple[FunctionSymbol, FunctionSymbol, MemberAccess]] = []
        self._pairs: List[Tuple[FunctionSymbol, FunctionSymbol]] = []  # (const, non-const)
        self._read_members: Set[Tuple[str, str]] = set()

    # ----- evidence ---------------------------------------------------------

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for fn in ctx.model.iter_functions():
            self._read_members.update((r.owner, r.member) for r in fn.reads)
        for t in ctx.model.types.values():
            self._collect_const_writes(ctx, t)
            self._collect_pairs(t)

    def _collect_const_writes(self, ctx: CheckerContext, t: TypeSymbol) -> None:
        for fn in t.functions:
            if not fn.is_const or not fn.has_body:
                continue
            for reached in ctx.callgraph.reachable(fn, follow=lambda s: s.via_this):
                for w in reached.writes:
                    self._const_writes.append((fn, reached, w))

    def _collect_pairs(self, t: TypeSymbol) -> None:
        groups: Dict[str, List[FunctionSymbol]] = defaultdict(list)
        for fn in t.functions:
            if not fn.is_special:
                groups[fn.overload_group].append(fn)
        for fns in groups.values():
            const = [f for f in fns if f.is_const]
            non_const = [f for f in fns if not f.is_const]
            if const and non_const and non_const[0].has_body:
                self._pairs.append((const[0], non_const[0]))

    # ----- delegation shape -------------------------------------------------

    def _delegates(self, const_fn: FunctionSymbol, fn: FunctionSymbol) -> bool:
        """Whether *fn*'s body is exactly a delegation to *const_fn*."""
        stmts = _flatten(fn.body or ())
        if len(stmts) != 1:
            return False
        stmt = stmts[0]

        call = None
        if isinstance(stmt, Return) and stmt.value is not None:
            value = stmt.value
            if isinstance(value, Cast) and value.cast == "const_cast":
                call = value.operand
            elif not is_const_qualified(const_fn.return_type):
                # by-value result: nothing to strip
                call = value
        elif isinstance(stmt, ExprStmt) and fn.return_type.strip() == "void":
            call = stmt.expr
        if not isinstance(call, Call) or call.receiver is None:
            return False

        view = this_view(call.receiver, fn.owner, False)
        if view is None or not view[1]:
            return False
        site = next((s for s in fn.calls if s.expr == call), None)
        if site is None or site.target != const_fn.id:
            return False

        if len(call.args) != len(fn.params):
            return False
        return all(
            isinstance(arg, NameRef) and arg.name == param.name
            for arg, param in zip(call.args, fn.params)
        )

    # ----- diagnosis --------------------------------------------------------

    def _is_caching_write(self, w: MemberAccess) -> bool:
        return (w.conditional and not w.in_loop
                and (w.owner, w.member) in self._read_members)

    def diagnose(self, ctx: CheckerContext) -> None:
        model = ctx.model
        seen: Set[Tuple[str, SourceLocation]] = set()
        for fn, reached, w in self._const_writes:
            owner = model.type(w.owner)
            member = owner.member(w.member) if owner is not None else None
            if member is None:
                continue
            via = "" if reached is fn else f" (via '{reached.qualified_name}')"
            if not member.is_mutable:
                key = (RULE_BITWISE, w.loc)
                if key in seen:
                    continue
                seen.add(key)
                self._emit(
                    RULE_BITWISE,
                    f"const member function '{fn.display_name}' writes non-mutable "
                    f"member '{member.qualified_name}'{via}",
                    w.loc,
                    suggested_fix=(
                        f"Drop the const qualifier of '{fn.qualified_name}', or declare "
                        f"'{member.name}' mutable if it is not part of the logical state"
                    ),
                )
            elif not self._is_caching_write(w):
                key = (RULE_MUTABLE, w.loc)
                if key in seen:
                    continue
                seen.add(key)
                shape = "inside a loop" if w.in_loop else (
                    "unconditionally" if not w.conditional else "although it is never read")
                self._emit(
                    RULE_MUTABLE,
                    f"mutable member '{member.qualified_name}' is written {shape} from "
                    f"const member function '{fn.display_name}'{via}; only a "
                    f"guarded write-once cache preserves logical constness",
                    w.loc,
                )

        for const_fn, fn in self._pairs:
            if self._delegates(const_fn, fn):
                continue
            cls = fn.owner
            args = ", ".join(p.name for p in fn.params)
            self._emit(
                RULE_DUPLICATE,
                f"'{fn.display_name}' duplicates the logic of '{const_fn.display_name}' "
                f"instead of delegating to it",
                fn.loc,
                suggested_fix=(
                    f"return const_cast<{fn.return_type}>("
                    f"static_cast<const {cls}&>(*this).{fn.name}({args}));"
                ),
            )
        logger.debug("constness: %d const write(s), %d overload pair(s) in %s",
                     len(self._const_writes), len(self._pairs), model.unit)


__all__ = ["ConstnessChecker", "RULE_BITWISE", "RULE_MUTABLE", "RULE_DUPLICATE"]
