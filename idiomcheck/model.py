"""
idiomcheck.model
================

The semantic model the analyzers run over: types, members, functions,
qualifiers, inheritance edges and per-function call graphs.

Every object in this module is a frozen dataclass holding tuples or
read-only mappings.  The model of one unit is produced once by
:func:`idiomcheck.builder.build_model` and is never mutated afterwards,
which is what lets the analyzers read it from several threads without
locks.

Symbols refer to each other by *name* (types) or *id* (functions)
rather than by object reference, so the model has no reference cycles
and symbols can be compared and hashed structurally.

Public API
----------
    SemanticModel        - the frozen per-unit model
    TypeSymbol           - a class / struct
    MemberSymbol         - a data member
    FunctionSymbol       - a member or free function
    InheritanceEdge      - a base → derived relationship
    ConstructionUnit     - a constructor / destructor with its phase type
    CallSite, MemberAccess
                         - resolved call-graph edges and member accesses
    Expr / Stmt classes  - the normalized function-body representation
"""

from __future__ import annotations

import enum
import re
from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Deque,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from idiomcheck.diagnostics import SourceLocation


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Access(enum.Enum):
    """Inheritance access specifier."""

    PUBLIC    = "public"
    PROTECTED = "protected"
    PRIVATE   = "private"


class FunctionKind(enum.Enum):
    """What a FunctionSymbol is."""

    METHOD      = "method"
    CONSTRUCTOR = "constructor"
    DESTRUCTOR  = "destructor"
    FREE        = "free"


class Phase(enum.Enum):
    """Object lifetime phase a ConstructionUnit executes in."""

    CONSTRUCTION = "constructor"
    DESTRUCTION  = "destructor"


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Expr:
    loc: SourceLocation


@dataclass(frozen=True)
class Call(Expr):
    """``receiver.callee(args)`` / ``qualifier::callee(args)`` / ``callee(args)``."""
    callee: str
    receiver: Optional[Expr]
    qualifier: Optional[str]
    args: Tuple[Expr, ...]


@dataclass(frozen=True)
class Construct(Expr):
    """Construction of a temporary: ``T(args)``."""
    type_name: str
    args: Tuple[Expr, ...]


@dataclass(frozen=True)
class New(Expr):
    """Fresh allocation: ``new T(args)``."""
    type_name: str
    args: Tuple[Expr, ...]


@dataclass(frozen=True)
class MemberRef(Expr):
    """``object.name``; ``object`` is ``None`` for an implicit ``this->name``."""
    name: str
    object: Optional[Expr]


@dataclass(frozen=True)
class NameRef(Expr):
    name: str


@dataclass(frozen=True)
class This(Expr):
    pass


@dataclass(frozen=True)
class Literal(Expr):
    value: str


@dataclass(frozen=True)
class Assign(Expr):
    target: Expr
    value: Expr
    op: str


@dataclass(frozen=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Cast(Expr):
    """``const_cast<T>(operand)``, ``static_cast<T>(operand)``, ..."""
    cast: str
    type_name: str
    operand: Expr


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Stmt:
    loc: SourceLocation


@dataclass(frozen=True)
class ExprStmt(Stmt):
    expr: Expr


@dataclass(frozen=True)
class Return(Stmt):
    value: Optional[Expr]


@dataclass(frozen=True)
class Throw(Stmt):
    value: Optional[Expr]


@dataclass(frozen=True)
class Decl(Stmt):
    name: str
    type_name: str
    init: Optional[Expr]


@dataclass(frozen=True)
class If(Stmt):
    cond: Expr
    then: Tuple[Stmt, ...]
    orelse: Tuple[Stmt, ...]


@dataclass(frozen=True)
class Loop(Stmt):
    cond: Optional[Expr]
    body: Tuple[Stmt, ...]


@dataclass(frozen=True)
class Try(Stmt):
    body: Tuple[Stmt, ...]
    handlers: Tuple[Tuple[Stmt, ...], ...]


@dataclass(frozen=True)
class Block(Stmt):
    body: Tuple[Stmt, ...]


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------

def child_exprs(expr: Expr) -> Tuple[Expr, ...]:
    """Direct subexpressions of *expr*, in evaluation-agnostic source order."""
    if isinstance(expr, Call):
        head = (expr.receiver,) if expr.receiver is not None else ()
        return head + expr.args
    if isinstance(expr, (Construct, New)):
        return expr.args
    if isinstance(expr, MemberRef):
        return (expr.object,) if expr.object is not None else ()
    if isinstance(expr, Assign):
        return (expr.target, expr.value)
    if isinstance(expr, Unary):
        return (expr.operand,)
    if isinstance(expr, Binary):
        return (expr.left, expr.right)
    if isinstance(expr, Cast):
        return (expr.operand,)
    return ()


def iter_subexprs(expr: Expr) -> Iterator[Expr]:
    """Pre-order walk over *expr* and all of its descendants."""
    stack: List[Expr] = [expr]
    while stack:
        e = stack.pop()
        yield e
        stack.extend(reversed(child_exprs(e)))


@dataclass(frozen=True)
class ExprContext:
    """Where a statement-level expression sits in its function body."""
    conditional: bool = False
    in_loop: bool = False


def iter_body_exprs(
    body: Tuple[Stmt, ...],
    ctx: ExprContext = ExprContext(),
) -> Iterator[Tuple[Expr, ExprContext]]:
    """Yield every statement-level expression in *body* with its context.

    Conditions of ``if`` / loop statements are themselves reported in the
    enclosing context; only the guarded branches become conditional.
    """
    for stmt in body:
        if isinstance(stmt, ExprStmt):
            yield stmt.expr, ctx
        elif isinstance(stmt, (Return, Throw)):
            if stmt.value is not None:
                yield stmt.value, ctx
        elif isinstance(stmt, Decl):
            if stmt.init is not None:
                yield stmt.init, ctx
        elif isinstance(stmt, If):
            yield stmt.cond, ctx
            inner = ExprContext(conditional=True, in_loop=ctx.in_loop)
            yield from iter_body_exprs(stmt.then, inner)
            yield from iter_body_exprs(stmt.orelse, inner)
        elif isinstance(stmt, Loop):
            inner = ExprContext(conditional=True, in_loop=True)
            if stmt.cond is not None:
                yield stmt.cond, inner
            yield from iter_body_exprs(stmt.body, inner)
        elif isinstance(stmt, Try):
            yield from iter_body_exprs(stmt.body, ctx)
            inner = ExprContext(conditional=True, in_loop=ctx.in_loop)
            for handler in stmt.handlers:
                yield from iter_body_exprs(handler, inner)
        elif isinstance(stmt, Block):
            yield from iter_body_exprs(stmt.body, ctx)


def unconditional_statements(body: Tuple[Stmt, ...]) -> Iterator[Stmt]:
    """Statements executed on every path through *body*, up to the first
    ``return``/``throw`` (nested plain blocks are flattened)."""
    for stmt in body:
        if isinstance(stmt, Block):
            yield from unconditional_statements(stmt.body)
            continue
        yield stmt
        if isinstance(stmt, (Return, Throw)):
            return


# ---------------------------------------------------------------------------
# Type-name helpers
# ---------------------------------------------------------------------------

_QUALIFIER_RE = re.compile(r"\b(const|volatile|struct|class)\b|[&*]")


def strip_type(type_name: str) -> str:
    """``"const Bird &"`` → ``"Bird"``."""
    return " ".join(_QUALIFIER_RE.sub(" ", type_name).split())


def is_const_qualified(type_name: str) -> bool:
    """Whether the pointee/referee of *type_name* is const-qualified."""
    return re.search(r"\bconst\b", type_name) is not None


def normalize_type(type_name: str) -> str:
    """Canonical spelling used to compare parameter types."""
    t = " ".join(type_name.split())
    t = re.sub(r"\s*([&*<>,])\s*", r"\1", t)
    return t


_AS_CONST = frozenset({"as_const", "std::as_const"})


def this_view(
    expr: Expr,
    owner: Optional[str],
    this_const: bool,
) -> Optional[Tuple[str, bool]]:
    """If *expr* denotes the current object, return ``(static type, is_const)``.

    Recognizes ``this``, ``*this``, casts of either
    (``static_cast<const T&>(*this)``, ``const_cast<T*>(this)``) and
    ``std::as_const(*this)``.  Returns ``None`` for anything else.
    """
    if owner is None:
        return None
    if isinstance(expr, This):
        return (owner, this_const)
    if isinstance(expr, Unary) and expr.op == "*":
        return this_view(expr.operand, owner, this_const)
    if isinstance(expr, Cast):
        inner = this_view(expr.operand, owner, this_const)
        if inner is None:
            return None
        return (strip_type(expr.type_name) or inner[0], is_const_qualified(expr.type_name))
    if isinstance(expr, Call) and len(expr.args) == 1 and expr.receiver is None:
        full = f"{expr.qualifier}::{expr.callee}" if expr.qualifier else expr.callee
        if full in _AS_CONST:
            inner = this_view(expr.args[0], owner, this_const)
            if inner is not None:
                return (inner[0], True)
    return None


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Parameter:
    name: str
    type_name: str


@dataclass(frozen=True)
class Initializer:
    """One entry of a constructor's member-initializer list."""
    member: str
    args: Tuple[Expr, ...]
    loc: SourceLocation


@dataclass(frozen=True)
class CallSite:
    """A resolved outgoing call of a function body.

    ``target`` is the id of the statically resolved FunctionSymbol, or
    ``None`` for calls into code outside the unit.  ``via_this`` marks
    calls made through the implicit object parameter (``f()``,
    ``this->f()``, ``Base::f()``); ``qualified`` marks explicitly
    qualified calls, which never dispatch virtually.
    """
    callee: str
    target: Optional[str]
    loc: SourceLocation
    via_this: bool
    qualified: bool
    conditional: bool
    in_loop: bool
    expr: Call


@dataclass(frozen=True)
class MemberAccess:
    """A read or write of a data member through ``this``."""
    owner: str
    member: str
    loc: SourceLocation
    conditional: bool
    in_loop: bool


@dataclass(frozen=True)
class MemberSymbol:
    owner: str
    name: str
    declared_type: str
    is_const: bool
    is_mutable: bool
    loc: SourceLocation

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}::{self.name}"


@dataclass(frozen=True)
class FunctionSymbol:
    id: str
    name: str
    owner: Optional[str]
    kind: FunctionKind
    params: Tuple[Parameter, ...]
    return_type: str
    is_const: bool
    is_virtual: bool
    is_pure: bool
    is_final: bool
    is_noexcept: bool
    declared_throws: Tuple[str, ...]
    overload_group: str
    loc: SourceLocation
    body: Optional[Tuple[Stmt, ...]]
    initializers: Tuple[Initializer, ...] = ()
    calls: Tuple[CallSite, ...] = ()
    writes: Tuple[MemberAccess, ...] = ()
    reads: Tuple[MemberAccess, ...] = ()

    @property
    def has_body(self) -> bool:
        return self.body is not None

    @property
    def param_types(self) -> Tuple[str, ...]:
        return tuple(normalize_type(p.type_name) for p in self.params)

    @property
    def signature(self) -> Tuple[str, Tuple[str, ...], bool]:
        """Override-matching key: name, parameter types, constness."""
        return (self.name, self.param_types, self.is_const)

    @property
    def qualified_name(self) -> str:
        if self.owner:
            return f"{self.owner}::{self.name}"
        return self.name

    @property
    def display_name(self) -> str:
        suffix = " const" if self.is_const else ""
        return f"{self.qualified_name}({', '.join(self.param_types)}){suffix}"

    @property
    def is_special(self) -> bool:
        return self.kind in (FunctionKind.CONSTRUCTOR, FunctionKind.DESTRUCTOR)


@dataclass(frozen=True)
class InheritanceEdge:
    base: str
    derived: str
    access: Access
    is_virtual: bool
    loc: SourceLocation

    @property
    def is_public(self) -> bool:
        return self.access is Access.PUBLIC


@dataclass(frozen=True)
class TypeSymbol:
    name: str
    loc: SourceLocation
    members: Tuple[MemberSymbol, ...]
    functions: Tuple[FunctionSymbol, ...]
    bases: Tuple[InheritanceEdge, ...]
    is_final: bool = False
    is_owning_handle: bool = False

    def member(self, name: str) -> Optional[MemberSymbol]:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def functions_named(self, name: str) -> List[FunctionSymbol]:
        return [f for f in self.functions if f.name == name]

    @property
    def virtual_functions(self) -> List[FunctionSymbol]:
        return [f for f in self.functions if f.is_virtual and not f.is_special]


@dataclass(frozen=True)
class ConstructionUnit:
    """A constructor or destructor body with its phase-local static type."""
    function: FunctionSymbol
    phase_type: str
    phase: Phase


# ---------------------------------------------------------------------------
# SemanticModel
# ---------------------------------------------------------------------------

class SemanticModel:
    """Frozen model of one unit.

    Attributes
    ----------
    unit : str
        Unit path, copied into every finding location.
    types : Mapping[str, TypeSymbol]
        Types keyed by name, in declaration order.
    free_functions : tuple[FunctionSymbol]
    edges : tuple[InheritanceEdge]
    construction_units : tuple[ConstructionUnit]
    """

    __slots__ = ("unit", "types", "free_functions", "edges",
                 "construction_units", "_functions", "_frozen")

    def __init__(
        self,
        unit: str,
        types: Tuple[TypeSymbol, ...],
        free_functions: Tuple[FunctionSymbol, ...],
    ) -> None:
        self.unit = unit
        self.types: Mapping[str, TypeSymbol] = MappingProxyType(
            {t.name: t for t in types}
        )
        self.free_functions: Tuple[FunctionSymbol, ...] = tuple(free_functions)
        self.edges: Tuple[InheritanceEdge, ...] = tuple(
            e for t in types for e in t.bases
        )
        fns = {}
        for f in self.iter_functions():
            fns[f.id] = f
        self._functions: Mapping[str, FunctionSymbol] = MappingProxyType(fns)
        self.construction_units: Tuple[ConstructionUnit, ...] = tuple(
            ConstructionUnit(
                function=f,
                phase_type=f.owner,
                phase=(Phase.CONSTRUCTION if f.kind is FunctionKind.CONSTRUCTOR
                       else Phase.DESTRUCTION),
            )
            for f in self.iter_functions()
            if f.is_special and f.has_body and f.owner is not None
        )
        self._frozen = True

    def __setattr__(self, name, value) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"SemanticModel is read-only (tried to set {name!r})")
        object.__setattr__(self, name, value)

    # ----- lookups ----------------------------------------------------------

    def type(self, name: str) -> Optional[TypeSymbol]:
        return self.types.get(name)

    def function(self, function_id: str) -> Optional[FunctionSymbol]:
        return self._functions.get(function_id)

    def iter_functions(self) -> Iterator[FunctionSymbol]:
        """All functions: member functions in type order, then free functions."""
        for t in self.types.values():
            yield from t.functions
        yield from self.free_functions

    def free_functions_named(self, name: str) -> List[FunctionSymbol]:
        return [f for f in self.free_functions if f.name == name]

    # ----- hierarchy queries ------------------------------------------------

    def ancestors(self, type_name: str) -> List[str]:
        """All (transitive) bases of *type_name* in breadth-first order."""
        seen: Set[str] = set()
        order: List[str] = []
        queue: Deque[str] = deque([type_name])
        while queue:
            current = queue.popleft()
            t = self.types.get(current)
            if t is None:
                continue
            for edge in t.bases:
                if edge.base not in seen:
                    seen.add(edge.base)
                    order.append(edge.base)
                    queue.append(edge.base)
        return order

    def lineage(self, type_name: str) -> List[str]:
        """*type_name* followed by its ancestors."""
        return [type_name] + self.ancestors(type_name)

    def is_same_or_base(self, candidate: str, type_name: str) -> bool:
        return candidate == type_name or candidate in self.ancestors(type_name)

    def lookup_member(self, type_name: str, name: str) -> Optional[MemberSymbol]:
        for tn in self.lineage(type_name):
            t = self.types.get(tn)
            if t is not None:
                m = t.member(name)
                if m is not None:
                    return m
        return None

    def lookup_function(
        self,
        type_name: str,
        name: str,
        arity: int,
        prefer_const: bool,
    ) -> Optional[FunctionSymbol]:
        """Resolve a call of *name* with *arity* arguments on *type_name*.

        The nearest class declaring *name* hides those further up; within
        it, candidates are filtered by arity and the variant matching the
        constness of the object expression wins.
        """
        for tn in self.lineage(type_name):
            t = self.types.get(tn)
            if t is None:
                continue
            named = t.functions_named(name)
            if not named:
                continue
            candidates = [f for f in named if len(f.params) == arity] or named
            if prefer_const:
                consts = [f for f in candidates if f.is_const]
                return (consts or candidates)[0]
            non_const = [f for f in candidates if not f.is_const]
            return (non_const or candidates)[0]
        return None

    def overrider_of(self, type_name: str, fn: FunctionSymbol) -> Optional[FunctionSymbol]:
        """The final overrider of *fn* as seen from *type_name*."""
        sig = fn.signature
        for tn in self.lineage(type_name):
            t = self.types.get(tn)
            if t is None:
                continue
            for cand in t.functions:
                if not cand.is_special and cand.signature == sig:
                    return cand
        return None

    def override_in(self, derived: str, base_fn: FunctionSymbol) -> Optional[FunctionSymbol]:
        """The function *derived* itself declares that overrides *base_fn*."""
        t = self.types.get(derived)
        if t is None:
            return None
        for cand in t.functions:
            if not cand.is_special and cand.signature == base_fn.signature:
                return cand
        return None

    def __repr__(self) -> str:
        return (
            f"SemanticModel({self.unit!r}, types={len(self.types)}, "
            f"functions={len(self._functions)})"
        )


__all__ = [
    "Access", "FunctionKind", "Phase",
    "Expr", "Call", "Construct", "New", "MemberRef", "NameRef", "This",
    "Literal", "Assign", "Unary", "Binary", "Cast",
    "Stmt", "ExprStmt", "Return", "Throw", "Decl", "If", "Loop", "Try", "Block",
    "child_exprs", "iter_subexprs", "iter_body_exprs", "unconditional_statements",
    "ExprContext", "strip_type", "is_const_qualified", "normalize_type", "this_view",
    "Parameter", "Initializer", "CallSite", "MemberAccess",
    "MemberSymbol", "FunctionSymbol", "InheritanceEdge", "TypeSymbol",
    "ConstructionUnit", "SemanticModel",
]
