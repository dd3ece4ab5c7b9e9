"""
idiomcheck.callgraph
====================

Call graph over the FunctionSymbols of one :class:`SemanticModel`.

- **Nodes** are function ids (plus a synthetic ``<external>`` sink for
  calls that leave the unit).
- **Edges** are the :class:`~idiomcheck.model.CallSite` records the
  Builder resolved for each function body, so every edge carries its
  call-site location and whether it went through the implicit object
  parameter.

The graph is derived from the frozen model, built once per unit and
shared read-only by the analyzers of that unit.

Public API
----------
    CallGraph        - the per-unit call graph
    tarjan_scc       - generic strongly-connected-components routine

Typical usage::

    cg = CallGraph(model)
    for fn in cg.reachable(ctor, follow=lambda site: site.via_this):
        ...
"""

from __future__ import annotations

from collections import OrderedDict, deque
from typing import (
    Callable,
    Deque,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
    TypeVar,
)

from idiomcheck.model import CallSite, FunctionSymbol, SemanticModel

N = TypeVar("N", bound=Hashable)

EXTERNAL = "<external>"


# ---------------------------------------------------------------------------
# Generic SCC
# ---------------------------------------------------------------------------

def tarjan_scc(
    nodes: Iterable[N],
    successors: Callable[[N], Iterable[N]],
) -> List[List[N]]:
    """Compute SCCs using Tarjan's algorithm (iterative).

    Returns SCCs in reverse topological order (successors before
    predecessors).  Each SCC with more than one node, or a node that is its
    own successor, is a cycle.
    """
    index_counter = 0
    stack: List[N] = []
    lowlink: Dict[N, int] = {}
    index: Dict[N, int] = {}
    on_stack: Set[N] = set()
    result: List[List[N]] = []

    for root in nodes:
        if root in index:
            continue
        # (node, iterator over successors)
        work: List[Tuple[N, Iterator[N]]] = [(root, iter(successors(root)))]
        index[root] = lowlink[root] = index_counter
        index_counter += 1
        stack.append(root)
        on_stack.add(root)

        while work:
            v, it = work[-1]
            advanced = False
            for w in it:
                if w not in index:
                    index[w] = lowlink[w] = index_counter
                    index_counter += 1
                    stack.append(w)
                    on_stack.add(w)
                    work.append((w, iter(successors(w))))
                    advanced = True
                    break
                if w in on_stack:
                    lowlink[v] = min(lowlink[v], index[w])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[v])

            if lowlink[v] == index[v]:
                scc: List[N] = []
                while True:
                    w = stack.pop()
                    on_stack.discard(w)
                    scc.append(w)
                    if w == v:
                        break
                result.append(scc)

    return result


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Per-unit call graph.

    Attributes
    ----------
    model : SemanticModel
    out_edges : dict[str, list[CallSite]]
        Outgoing call sites keyed by caller id.
    in_edges : dict[str, list[tuple[str, CallSite]]]
        Incoming ``(caller id, call site)`` pairs keyed by callee id
        (``EXTERNAL`` for unresolved callees).
    """

    def __init__(self, model: SemanticModel) -> None:
        self.model = model
        self.out_edges: "OrderedDict[str, List[CallSite]]" = OrderedDict()
        self.in_edges: Dict[str, List[Tuple[str, CallSite]]] = {}
        for fn in model.iter_functions():
            self.out_edges[fn.id] = list(fn.calls)
            for site in fn.calls:
                callee = site.target or EXTERNAL
                self.in_edges.setdefault(callee, []).append((fn.id, site))

    # ----- queries ----------------------------------------------------------

    def target_of(self, site: CallSite) -> Optional[FunctionSymbol]:
        if site.target is None:
            return None
        return self.model.function(site.target)

    def reachable(
        self,
        start: FunctionSymbol,
        follow: Optional[Callable[[CallSite], bool]] = None,
        include_start: bool = True,
    ) -> List[FunctionSymbol]:
        """Functions transitively reachable from *start*, breadth-first.

        Only edges for which *follow* returns true are traversed.  Each
        function appears once, so cycles terminate the walk.
        """
        visited: Set[str] = {start.id}
        order: List[FunctionSymbol] = [start] if include_start else []
        worklist: Deque[FunctionSymbol] = deque([start])
        while worklist:
            fn = worklist.popleft()
            for site in self.out_edges.get(fn.id, ()):
                if follow is not None and not follow(site):
                    continue
                target = self.target_of(site)
                if target is None or target.id in visited:
                    continue
                visited.add(target.id)
                order.append(target)
                worklist.append(target)
        return order

    def calls_transitively(
        self,
        start: FunctionSymbol,
        name: str,
        follow: Optional[Callable[[CallSite], bool]] = None,
    ) -> bool:
        """Whether any function reachable from *start* calls something named
        *name* through an edge accepted by *follow*."""
        for fn in self.reachable(start, follow=follow):
            if any(site.callee == name and (follow is None or follow(site))
                   for site in fn.calls):
                return True
        return False

    def recursive_functions(self) -> Set[str]:
        """Ids of functions that take part in a (possibly indirect) cycle."""
        def succ(fid: str) -> List[str]:
            return [s.target for s in self.out_edges.get(fid, ()) if s.target]

        result: Set[str] = set()
        for scc in tarjan_scc(list(self.out_edges), succ):
            if len(scc) > 1 or scc[0] in succ(scc[0]):
                result.update(scc)
        return result

    def statistics(self) -> Dict[str, int]:
        n_edges = sum(len(v) for v in self.out_edges.values())
        n_external = len(self.in_edges.get(EXTERNAL, ()))
        return {
            "functions": len(self.out_edges),
            "call_sites": n_edges,
            "external_calls": n_external,
            "recursive_functions": len(self.recursive_functions()),
        }

    def __repr__(self) -> str:
        return f"CallGraph({self.model.unit!r}, functions={len(self.out_edges)})"


__all__ = ["CallGraph", "tarjan_scc", "EXTERNAL"]
