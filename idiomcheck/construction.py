"""
idiomcheck.construction
=======================

Construction/Destruction Dispatch Analyzer.

While ``P::P()`` runs, the object *is* a ``P``: derived parts are not yet
constructed (or, in ``P::~P()``, already destroyed), so a virtual call
binds to ``P``'s own final overrider, or to nothing at all when that is
pure.  This checker walks every constructor / destructor body together
with its member-initializer list and the helpers it reaches through
``this``, and reports each virtual call on the way.

Traversal stays on ``P`` and its bases; calls to unrelated objects or
free functions are not followed.  A function already visited for a
given construction unit ends the walk (recursion is not reported here).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import ClassVar, Deque, Dict, List, Set, Tuple

from idiomcheck.checkers import Checker, CheckerContext, default_rule
from idiomcheck.diagnostics import Severity
from idiomcheck.model import CallSite, ConstructionUnit, FunctionSymbol

logger = logging.getLogger(__name__)

RULE_ERROR = "CTOR-VCALL-error"
RULE_WARNING = "CTOR-VCALL-warning"


@dataclass(frozen=True)
class _VirtualCall:
    unit: ConstructionUnit
    site: CallSite
    resolved: FunctionSymbol
    chain: Tuple[FunctionSymbol, ...]


class ConstructionChecker(Checker):
    """Reports virtual calls that cannot reach a more-derived override."""

    name: ClassVar[str] = "construction"
    description: ClassVar[str] = "Virtual dispatch during construction and destruction"
    rules: ClassVar[Dict] = {
        RULE_ERROR: default_rule(Severity.ERROR),
        RULE_WARNING: default_rule(Severity.WARNING),
    }

    def __init__(self) -> None:
        super().__init__()
        self._calls: List[_VirtualCall] = []

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for unit in ctx.model.construction_units:
            self._walk(ctx, unit)

    def _walk(self, ctx: CheckerContext, unit: ConstructionUnit) -> None:
        model = ctx.model
        phase_types = set(model.lineage(unit.phase_type))
        visited: Set[str] = {unit.function.id}
        worklist: Deque[Tuple[FunctionSymbol, Tuple[FunctionSymbol, ...]]] = deque(
            [(unit.function, (unit.function,))]
        )
        while worklist:
            fn, chain = worklist.popleft()
            for site in ctx.callgraph.out_edges.get(fn.id, ()):
                if not site.via_this:
                    continue
                target = ctx.callgraph.target_of(site)
                if target is None or target.owner not in phase_types:
                    continue
                resolved = target
                if target.is_virtual and not site.qualified:
                    resolved = model.overrider_of(unit.phase_type, target) or target
                    self._calls.append(_VirtualCall(unit, site, resolved, chain))
                if resolved.has_body and resolved.id not in visited:
                    visited.add(resolved.id)
                    worklist.append((resolved, chain + (resolved,)))

    def diagnose(self, ctx: CheckerContext) -> None:
        for call in self._calls:
            unit = call.unit
            phase = unit.phase.value
            path = " -> ".join(f.qualified_name for f in call.chain)
            target = call.resolved
            if target.is_pure and not target.has_body:
                self._emit(
                    RULE_ERROR,
                    f"call to pure virtual '{target.display_name}' during {phase} of "
                    f"'{unit.phase_type}' ({path}); no implementation exists for a "
                    f"'{unit.phase_type}' under {phase}",
                    call.site.loc,
                    suggested_fix=(
                        f"Do not call '{target.name}' from '{unit.function.qualified_name}'; "
                        f"pass the needed information up from the derived constructor "
                        f"instead"
                    ),
                )
                continue
            if target.is_final or self._is_final_type(ctx, unit.phase_type):
                continue
            self._emit(
                RULE_WARNING,
                f"virtual call to '{call.site.callee}' during {phase} of "
                f"'{unit.phase_type}' ({path}) binds to '{target.display_name}', "
                f"never to a more-derived override",
                call.site.loc,
                suggested_fix=(
                    f"Qualify the call as '{target.qualified_name}()' if this binding "
                    f"is intended, or make the operation non-virtual"
                ),
            )
        logger.debug("construction: %d virtual call(s) in %d construction unit(s) of %s",
                     len(self._calls), len(ctx.model.construction_units), ctx.model.unit)

    @staticmethod
    def _is_final_type(ctx: CheckerContext, name: str) -> bool:
        t = ctx.model.type(name)
        return t is not None and t.is_final


__all__ = ["ConstructionChecker", "RULE_ERROR", "RULE_WARNING"]
