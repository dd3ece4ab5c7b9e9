"""
idiomcheck.builder
==================

Semantic Model Builder: normalizes one unit's structured program
representation (see :mod:`idiomcheck.frontend` for its JSON form) into a
frozen :class:`~idiomcheck.model.SemanticModel`.

The Builder resolves

(a) overload groups pairing const / non-const functions with identical
    name and parameter types,
(b) inheritance edges with their access specifiers,
(c) per-member mutable-exempt flags,
(d) call graphs for every function body, including calls made through
    the implicit object parameter, and member reads/writes through
    ``this``.

Malformed or incomplete input raises :class:`~idiomcheck.errors.ModelError`.

Typical usage::

    from idiomcheck.builder import build_model

    model = build_model(representation)
    for cu in model.construction_units:
        print(cu.function.display_name, cu.phase_type)
"""

from __future__ import annotations

import dataclasses
import logging
from collections import OrderedDict, defaultdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from idiomcheck.callgraph import tarjan_scc
from idiomcheck.diagnostics import SourceLocation
from idiomcheck.errors import ModelError
from idiomcheck.model import (
    Access,
    Assign,
    Binary,
    Block,
    Call,
    CallSite,
    Cast,
    Construct,
    Decl,
    Expr,
    ExprContext,
    ExprStmt,
    FunctionKind,
    FunctionSymbol,
    If,
    InheritanceEdge,
    Initializer,
    Literal,
    Loop,
    MemberAccess,
    MemberRef,
    MemberSymbol,
    NameRef,
    New,
    Parameter,
    Return,
    SemanticModel,
    Stmt,
    This,
    Throw,
    Try,
    TypeSymbol,
    Unary,
    child_exprs,
    is_const_qualified,
    iter_body_exprs,
    normalize_type,
    strip_type,
    this_view,
)

logger = logging.getLogger(__name__)

_WRITE_UNARY_OPS = frozenset({"++", "--", "post++", "post--"})
_DESTRUCTOR_SIG = ("~", (), False)


def build_model(representation: Mapping[str, Any]) -> SemanticModel:
    """Build the frozen model of one unit; raises ``ModelError``."""
    return ModelBuilder(representation).build()


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — REPRESENTATION DECODING
# ═════════════════════════════════════════════════════════════════════════

class _Decoder:
    """Field access and node decoding with ModelError reporting."""

    def __init__(self, unit: str) -> None:
        self.unit = unit

    def fail(self, message: str, node: Any = None) -> ModelError:
        line, column = self._pos(node) if isinstance(node, Mapping) else (0, 0)
        return ModelError(message, unit=self.unit, line=line, column=column)

    @staticmethod
    def _pos(node: Mapping[str, Any]) -> Tuple[int, int]:
        src = node.get("location", node)
        if not isinstance(src, Mapping):
            return (0, 0)
        line, column = src.get("line", 0), src.get("column", 0)
        if not isinstance(line, int) or not isinstance(column, int):
            return (0, 0)
        return (line, column)

    def loc(self, node: Mapping[str, Any]) -> SourceLocation:
        line, column = self._pos(node)
        return SourceLocation(unit=self.unit, line=line, column=column)

    def require_str(self, node: Mapping[str, Any], key: str, what: str) -> str:
        value = node.get(key)
        if not isinstance(value, str) or not value:
            raise self.fail(f"{what}: missing or invalid '{key}'", node)
        return value

    def opt_str(self, node: Mapping[str, Any], key: str, default: str = "") -> str:
        value = node.get(key, default)
        if value is None:
            return default
        if not isinstance(value, str):
            raise self.fail(f"'{key}' must be a string", node)
        return value

    def flag(self, node: Mapping[str, Any], key: str) -> bool:
        value = node.get(key, False)
        if not isinstance(value, bool):
            raise self.fail(f"'{key}' must be a boolean", node)
        return value

    def seq(self, node: Mapping[str, Any], key: str) -> List[Any]:
        value = node.get(key, [])
        if value is None:
            return []
        if not isinstance(value, list):
            raise self.fail(f"'{key}' must be a list", node)
        for item in value:
            if not isinstance(item, Mapping):
                raise self.fail(f"'{key}' entries must be objects", node)
        return value

    # ----- expressions ------------------------------------------------------

    def expr(self, node: Any) -> Expr:
        if not isinstance(node, Mapping):
            raise self.fail(f"expression must be an object, got {type(node).__name__}")
        kind = node.get("kind")
        loc = self.loc(node)
        if kind == "call":
            receiver = node.get("receiver")
            qualifier = node.get("qualifier")
            if qualifier is not None and not isinstance(qualifier, str):
                raise self.fail("call 'qualifier' must be a string", node)
            return Call(
                loc=loc,
                callee=self.require_str(node, "callee", "call"),
                receiver=self.expr(receiver) if receiver is not None else None,
                qualifier=qualifier or None,
                args=self.exprs(node, "args"),
            )
        if kind == "construct":
            return Construct(loc=loc, type_name=self.require_str(node, "type", "construct"),
                             args=self.exprs(node, "args"))
        if kind == "new":
            return New(loc=loc, type_name=self.require_str(node, "type", "new"),
                       args=self.exprs(node, "args"))
        if kind == "member":
            obj = node.get("object")
            return MemberRef(loc=loc, name=self.require_str(node, "name", "member"),
                             object=self.expr(obj) if obj is not None else None)
        if kind == "name":
            return NameRef(loc=loc, name=self.require_str(node, "name", "name"))
        if kind == "this":
            return This(loc=loc)
        if kind == "literal":
            return Literal(loc=loc, value=str(node.get("value", "")))
        if kind == "assign":
            return Assign(loc=loc, target=self.expr(node.get("target")),
                          value=self.expr(node.get("value")),
                          op=self.opt_str(node, "op", "="))
        if kind == "unary":
            return Unary(loc=loc, op=self.require_str(node, "op", "unary"),
                         operand=self.expr(node.get("operand")))
        if kind == "binary":
            return Binary(loc=loc, op=self.require_str(node, "op", "binary"),
                          left=self.expr(node.get("left")),
                          right=self.expr(node.get("right")))
        if kind == "cast":
            return Cast(loc=loc, cast=self.opt_str(node, "cast", "static_cast"),
                        type_name=self.require_str(node, "type", "cast"),
                        operand=self.expr(node.get("operand")))
        raise self.fail(f"unknown expression kind {kind!r}", node)

    def exprs(self, node: Mapping[str, Any], key: str) -> Tuple[Expr, ...]:
        return tuple(self.expr(e) for e in self.seq(node, key))

    # ----- statements -------------------------------------------------------

    _EXPR_KINDS = frozenset({
        "call", "construct", "new", "member", "name", "this", "literal",
        "assign", "unary", "binary", "cast",
    })

    def stmt(self, node: Any) -> Stmt:
        if not isinstance(node, Mapping):
            raise self.fail("statement must be an object")
        kind = node.get("kind")
        if not isinstance(kind, str):
            raise self.fail(f"statement kind must be a string, got {type(kind).__name__}", node)
        loc = self.loc(node)
        if kind in self._EXPR_KINDS:
            return ExprStmt(loc=loc, expr=self.expr(node))
        if kind == "expr":
            return ExprStmt(loc=loc, expr=self.expr(node.get("expr")))
        if kind == "return":
            value = node.get("expr")
            return Return(loc=loc, value=self.expr(value) if value is not None else None)
        if kind == "throw":
            value = node.get("expr")
            return Throw(loc=loc, value=self.expr(value) if value is not None else None)
        if kind == "decl":
            init = node.get("init")
            return Decl(loc=loc, name=self.require_str(node, "name", "decl"),
                        type_name=self.require_str(node, "type", "decl"),
                        init=self.expr(init) if init is not None else None)
        if kind == "if":
            return If(loc=loc, cond=self.expr(node.get("cond")),
                      then=self.block(node, "then"), orelse=self.block(node, "else"))
        if kind == "loop":
            cond = node.get("cond")
            return Loop(loc=loc, cond=self.expr(cond) if cond is not None else None,
                        body=self.block(node, "body"))
        if kind == "try":
            handlers = node.get("handlers", [])
            if not isinstance(handlers, list) or not all(isinstance(h, list) for h in handlers):
                raise self.fail("try 'handlers' must be a list of statement lists", node)
            return Try(loc=loc, body=self.block(node, "body"),
                       handlers=tuple(tuple(self.stmt(s) for s in h) for h in handlers))
        if kind == "block":
            return Block(loc=loc, body=self.block(node, "body"))
        raise self.fail(f"unknown statement kind {kind!r}", node)

    def block(self, node: Mapping[str, Any], key: str) -> Tuple[Stmt, ...]:
        return tuple(self.stmt(s) for s in self.seq(node, key))


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — DECLARATIONS (first pass)
# ═════════════════════════════════════════════════════════════════════════

_KINDS = {k.value: k for k in FunctionKind}
_ACCESS = {a.value: a for a in Access}


def _function_id(owner: Optional[str], name: str, param_types: Sequence[str],
                 is_const: bool) -> str:
    prefix = f"{owner}::" if owner else ""
    suffix = " const" if is_const else ""
    return f"{prefix}{name}({','.join(param_types)}){suffix}"


class ModelBuilder:
    """Two-pass builder.

    Pass 1 decodes declarations and validates structure (types, bases,
    overload groups, inheritance DAG, implied virtuality).  Pass 2 resolves
    every function body against the declarations to produce call sites and
    member accesses, then freezes the result.
    """

    def __init__(self, representation: Mapping[str, Any]) -> None:
        if not isinstance(representation, Mapping):
            raise ModelError("program representation must be an object")
        unit = representation.get("unit")
        if not isinstance(unit, str) or not unit:
            raise ModelError("program representation has no 'unit' path")
        self.rep = representation
        self.unit = unit
        self.dec = _Decoder(unit)

    def build(self) -> SemanticModel:
        raw_types = self.dec.seq(self.rep, "types")
        raw_free = self.dec.seq(self.rep, "functions")

        types: "OrderedDict[str, TypeSymbol]" = OrderedDict()
        for raw in raw_types:
            t = self._decode_type(raw)
            if t.name in types:
                raise self.dec.fail(f"duplicate type '{t.name}'", raw)
            types[t.name] = t

        free = tuple(self._decode_function(raw, owner=None) for raw in raw_free)
        self._check_duplicates(free)

        self._check_bases(types)
        order = self._topological_order(types)
        types = self._apply_implied_virtual(types, order)
        self._check_overload_groups(types)

        provisional = SemanticModel(self.unit, tuple(types.values()), free)
        resolved_types = tuple(
            dataclasses.replace(
                t, functions=tuple(self._resolve_body(provisional, f) for f in t.functions)
            )
            for t in types.values()
        )
        resolved_free = tuple(self._resolve_body(provisional, f) for f in free)
        model = SemanticModel(self.unit, resolved_types, resolved_free)
        logger.debug("Built %r", model)
        return model

    # ----- decoding ---------------------------------------------------------

    def _decode_type(self, raw: Mapping[str, Any]) -> TypeSymbol:
        dec = self.dec
        name = dec.require_str(raw, "name", "type")
        loc = dec.loc(raw)

        members: List[MemberSymbol] = []
        seen_members: Set[str] = set()
        for rm in dec.seq(raw, "members"):
            mname = dec.require_str(rm, "name", f"member of '{name}'")
            if mname in seen_members:
                raise dec.fail(f"duplicate member '{name}::{mname}'", rm)
            seen_members.add(mname)
            members.append(MemberSymbol(
                owner=name,
                name=mname,
                declared_type=dec.require_str(rm, "type", f"member '{name}::{mname}'"),
                is_const=dec.flag(rm, "const"),
                is_mutable=dec.flag(rm, "mutable"),
                loc=dec.loc(rm),
            ))

        bases: List[InheritanceEdge] = []
        for rb in dec.seq(raw, "bases"):
            bname = dec.require_str(rb, "name", f"base of '{name}'")
            access_s = dec.opt_str(rb, "access", "public")
            access = _ACCESS.get(access_s)
            if access is None:
                raise dec.fail(f"unknown access specifier {access_s!r} for base '{bname}'", rb)
            bases.append(InheritanceEdge(
                base=bname, derived=name, access=access,
                is_virtual=dec.flag(rb, "virtual"),
                loc=dec.loc(rb) if ("location" in rb or "line" in rb) else loc,
            ))

        functions = tuple(
            self._decode_function(rf, owner=name, member_names=seen_members,
                                  base_names={b.base for b in bases})
            for rf in dec.seq(raw, "functions")
        )
        self._check_duplicates(functions)

        return TypeSymbol(
            name=name,
            loc=loc,
            members=tuple(members),
            functions=functions,
            bases=tuple(bases),
            is_final=dec.flag(raw, "final"),
            is_owning_handle=dec.flag(raw, "owning_handle"),
        )

    def _decode_function(
        self,
        raw: Mapping[str, Any],
        owner: Optional[str],
        member_names: Set[str] = frozenset(),
        base_names: Set[str] = frozenset(),
    ) -> FunctionSymbol:
        dec = self.dec
        name = dec.require_str(raw, "name", f"function of '{owner or self.unit}'")
        what = f"{owner}::{name}" if owner else name

        kind_s = dec.opt_str(raw, "kind", "method" if owner else "free")
        kind = _KINDS.get(kind_s)
        if kind is None:
            raise dec.fail(f"{what}: unknown function kind {kind_s!r}", raw)
        if owner is None and kind is not FunctionKind.FREE:
            raise dec.fail(f"{what}: free function declared as {kind_s}", raw)
        if owner is not None and kind is FunctionKind.FREE:
            raise dec.fail(f"{what}: member function declared as free", raw)

        params = tuple(
            Parameter(
                name=dec.opt_str(rp, "name", f"_{i}"),
                type_name=dec.require_str(rp, "type", f"parameter {i} of {what}"),
            )
            for i, rp in enumerate(dec.seq(raw, "params"))
        )
        is_const = dec.flag(raw, "const")
        is_pure = dec.flag(raw, "pure")
        declared_virtual = dec.flag(raw, "virtual") or is_pure
        if kind is FunctionKind.CONSTRUCTOR and declared_virtual:
            raise dec.fail(f"{what}: constructor cannot be virtual", raw)

        body_raw = raw.get("body")
        if body_raw is not None and not isinstance(body_raw, list):
            raise dec.fail(f"{what}: 'body' must be a list of statements or null", raw)
        body = tuple(dec.stmt(s) for s in body_raw) if body_raw is not None else None
        if is_pure and body is not None:
            raise dec.fail(f"{what}: pure-virtual function has a body", raw)

        initializers: List[Initializer] = []
        for ri in dec.seq(raw, "initializers"):
            target = dec.require_str(ri, "member", f"initializer of {what}")
            if kind is not FunctionKind.CONSTRUCTOR:
                raise dec.fail(f"{what}: only constructors have member initializers", ri)
            if target not in member_names and target not in base_names:
                raise dec.fail(f"{what}: initializer names unknown member '{target}'", ri)
            initializers.append(Initializer(member=target, args=dec.exprs(ri, "args"),
                                            loc=dec.loc(ri)))

        throws = raw.get("throws", [])
        if not isinstance(throws, list) or not all(isinstance(t, str) for t in throws):
            raise dec.fail(f"{what}: 'throws' must be a list of type names", raw)

        param_types = tuple(normalize_type(p.type_name) for p in params)
        group = raw.get("overload_group")
        if group is not None and (not isinstance(group, str) or not group):
            raise dec.fail(f"{what}: 'overload_group' must be a non-empty string", raw)

        return FunctionSymbol(
            id=_function_id(owner, name, param_types, is_const),
            name=name,
            owner=owner,
            kind=kind,
            params=params,
            return_type=dec.opt_str(raw, "return_type", "void"),
            is_const=is_const,
            is_virtual=declared_virtual,
            is_pure=is_pure,
            is_final=dec.flag(raw, "final"),
            is_noexcept=dec.flag(raw, "noexcept"),
            declared_throws=tuple(throws),
            overload_group=group or _function_id(owner, name, param_types, False),
            loc=dec.loc(raw),
            body=body,
            initializers=tuple(initializers),
        )

    # ----- validation -------------------------------------------------------

    def _check_duplicates(self, functions: Sequence[FunctionSymbol]) -> None:
        seen: Set[str] = set()
        for f in functions:
            if f.id in seen:
                raise ModelError(f"duplicate declaration of {f.display_name}",
                                 unit=self.unit, line=f.loc.line, column=f.loc.column)
            seen.add(f.id)

    def _check_bases(self, types: Mapping[str, TypeSymbol]) -> None:
        for t in types.values():
            seen: Set[str] = set()
            for edge in t.bases:
                if edge.base not in types:
                    raise ModelError(
                        f"unresolved base type '{edge.base}' of '{t.name}'",
                        unit=self.unit, line=edge.loc.line, column=edge.loc.column,
                    )
                if edge.base in seen:
                    raise ModelError(f"'{t.name}' lists base '{edge.base}' twice",
                                     unit=self.unit, line=edge.loc.line,
                                     column=edge.loc.column)
                seen.add(edge.base)

    def _topological_order(self, types: Mapping[str, TypeSymbol]) -> List[str]:
        """Type names, bases before derived; raises on inheritance cycles."""
        def bases_of(name: str) -> List[str]:
            return [e.base for e in types[name].bases]

        order: List[str] = []
        for scc in tarjan_scc(list(types), bases_of):
            if len(scc) > 1 or scc[0] in bases_of(scc[0]):
                cycle = " -> ".join(sorted(scc))
                first = types[sorted(scc)[0]]
                raise ModelError(f"inheritance cycle: {cycle}", unit=self.unit,
                                 line=first.loc.line, column=first.loc.column)
            order.extend(scc)
        return order

    def _apply_implied_virtual(
        self,
        types: "OrderedDict[str, TypeSymbol]",
        order: Sequence[str],
    ) -> "OrderedDict[str, TypeSymbol]":
        """Mark functions that override a base virtual as virtual."""
        virtual_sigs: Dict[str, Set[tuple]] = {}
        updated: Dict[str, TypeSymbol] = {}
        for name in order:
            t = types[name]
            inherited: Set[tuple] = set()
            for edge in t.bases:
                inherited |= virtual_sigs[edge.base]
            own: Set[tuple] = set()
            functions: List[FunctionSymbol] = []
            for f in t.functions:
                sig = _DESTRUCTOR_SIG if f.kind is FunctionKind.DESTRUCTOR else f.signature
                if f.kind is FunctionKind.CONSTRUCTOR:
                    functions.append(f)
                    continue
                if not f.is_virtual and sig in inherited:
                    f = dataclasses.replace(f, is_virtual=True)
                if f.is_virtual:
                    own.add(sig)
                functions.append(f)
            virtual_sigs[name] = inherited | own
            updated[name] = dataclasses.replace(t, functions=tuple(functions))
        return OrderedDict((name, updated[name]) for name in types)

    def _check_overload_groups(self, types: Mapping[str, TypeSymbol]) -> None:
        by_label: Dict[str, List[FunctionSymbol]] = defaultdict(list)
        by_shape: Dict[tuple, Set[str]] = defaultdict(set)
        for t in types.values():
            for f in t.functions:
                by_label[f.overload_group].append(f)
                by_shape[(f.owner, f.name, f.param_types)].add(f.overload_group)

        for label, fns in by_label.items():
            shapes = {(f.owner, f.name, f.param_types) for f in fns}
            n_const = sum(1 for f in fns if f.is_const)
            if len(shapes) > 1 or n_const > 1 or len(fns) - n_const > 1:
                f = fns[-1]
                raise ModelError(
                    f"dangling overload group '{label}': members do not form a "
                    f"const/non-const pair of one signature",
                    unit=self.unit, line=f.loc.line, column=f.loc.column,
                )
        for (owner, name, _params), labels in by_shape.items():
            if len(labels) > 1:
                raise ModelError(
                    f"dangling overload group: variants of {owner}::{name} are "
                    f"split across groups {sorted(labels)}",
                    unit=self.unit,
                )

    # ═════════════════════════════════════════════════════════════════════
    #  PART 3 — BODY RESOLUTION (second pass)
    # ═════════════════════════════════════════════════════════════════════

    def _resolve_body(self, model: SemanticModel, fn: FunctionSymbol) -> FunctionSymbol:
        if fn.body is None and not fn.initializers:
            return fn
        resolver = _BodyResolver(model, fn)
        resolver.run()
        return dataclasses.replace(
            fn,
            calls=tuple(resolver.calls),
            writes=tuple(resolver.writes),
            reads=tuple(resolver.reads),
        )


class _BodyResolver:
    """Collects call sites and member accesses of one function body."""

    def __init__(self, model: SemanticModel, fn: FunctionSymbol) -> None:
        self.model = model
        self.fn = fn
        self.owner = fn.owner
        self.this_const = fn.is_const
        self.locals: Dict[str, str] = {p.name: p.type_name for p in fn.params}
        _collect_decls(fn.body or (), self.locals)
        self.calls: List[CallSite] = []
        self.writes: List[MemberAccess] = []
        self.reads: List[MemberAccess] = []

    def run(self) -> None:
        for init in self.fn.initializers:
            for arg in init.args:
                self.visit(arg, ExprContext())
        for expr, ctx in iter_body_exprs(self.fn.body or ()):
            self.visit(expr, ctx)

    # ----- member resolution ------------------------------------------------

    def _member(self, expr: Expr) -> Optional[MemberSymbol]:
        """The member of the current object *expr* names directly, if any."""
        if self.owner is None:
            return None
        if isinstance(expr, MemberRef):
            if expr.object is None or this_view(expr.object, self.owner, self.this_const):
                return self.model.lookup_member(self.owner, expr.name)
            return None
        if isinstance(expr, NameRef) and expr.name not in self.locals:
            return self.model.lookup_member(self.owner, expr.name)
        return None

    def _written_member(self, target: Expr) -> Optional[MemberSymbol]:
        """The member whose storage an assignment to *target* modifies."""
        direct = self._member(target)
        if direct is not None:
            return direct
        inner: Optional[Expr] = None
        if isinstance(target, MemberRef) and target.object is not None:
            inner = target.object
        elif isinstance(target, Binary) and target.op == "[]":
            inner = target.left
        if inner is None:
            return None
        m = self._written_member(inner)
        if m is not None and "*" not in m.declared_type:
            return m
        return None

    def _access(self, m: MemberSymbol, loc, ctx: ExprContext) -> MemberAccess:
        return MemberAccess(owner=m.owner, member=m.name, loc=loc,
                            conditional=ctx.conditional, in_loop=ctx.in_loop)

    # ----- traversal --------------------------------------------------------

    def visit(self, expr: Expr, ctx: ExprContext) -> None:
        if isinstance(expr, Assign):
            m = self._written_member(expr.target)
            if m is not None:
                self.writes.append(self._access(m, expr.loc, ctx))
                if expr.op != "=":
                    self.reads.append(self._access(m, expr.loc, ctx))
                self._visit_target_children(expr.target, ctx)
            else:
                self.visit(expr.target, ctx)
            self.visit(expr.value, ctx)
            return

        if isinstance(expr, Unary) and expr.op in _WRITE_UNARY_OPS:
            m = self._written_member(expr.operand)
            if m is not None:
                self.writes.append(self._access(m, expr.loc, ctx))
                self.reads.append(self._access(m, expr.loc, ctx))
                self._visit_target_children(expr.operand, ctx)
                return

        if isinstance(expr, Call):
            self._visit_call(expr, ctx)
            return

        m = self._member(expr)
        if m is not None:
            self.reads.append(self._access(m, expr.loc, ctx))
            return

        for child in child_exprs(expr):
            self.visit(child, ctx)

    def _visit_target_children(self, target: Expr, ctx: ExprContext) -> None:
        # subscripts and nested objects of a write target are still reads
        if isinstance(target, Binary):
            self.visit(target.right, ctx)
        elif isinstance(target, MemberRef) and target.object is not None:
            if self._member(target) is None:
                self._visit_target_children(target.object, ctx)

    def _visit_call(self, call: Call, ctx: ExprContext) -> None:
        target, via_this, qualified = self._resolve_call(call)
        self.calls.append(CallSite(
            callee=call.callee,
            target=target.id if target is not None else None,
            loc=call.loc,
            via_this=via_this,
            qualified=qualified,
            conditional=ctx.conditional,
            in_loop=ctx.in_loop,
            expr=call,
        ))
        receiver = call.receiver
        if receiver is not None and this_view(receiver, self.owner, self.this_const) is None:
            m = self._written_member(receiver)
            if (m is not None and target is not None and not target.is_const
                    and "*" not in m.declared_type):
                # non-const member function called on a data member
                self.writes.append(self._access(m, call.loc, ctx))
            self.visit(receiver, ctx)
        for arg in call.args:
            self.visit(arg, ctx)

    def _resolve_call(self, call: Call) -> Tuple[Optional[FunctionSymbol], bool, bool]:
        """Return ``(target, via_this, qualified)`` for *call*."""
        model = self.model
        arity = len(call.args)

        if call.qualifier is not None and call.receiver is None:
            qtype = model.type(call.qualifier)
            if qtype is None:
                return (None, False, True)
            via_this = (self.owner is not None
                        and model.is_same_or_base(call.qualifier, self.owner))
            target = model.lookup_function(call.qualifier, call.callee, arity,
                                           self.this_const if via_this else False)
            return (target, via_this and target is not None, True)

        if call.receiver is None:
            if self.owner is not None:
                target = model.lookup_function(self.owner, call.callee, arity, self.this_const)
                if target is not None:
                    return (target, True, False)
            candidates = model.free_functions_named(call.callee)
            matching = [f for f in candidates if len(f.params) == arity] or candidates
            return (matching[0] if matching else None, False, False)

        view = this_view(call.receiver, self.owner, self.this_const)
        if view is not None:
            static_type, is_const = view
            if model.type(static_type) is None:
                static_type = self.owner
            lookup_type = call.qualifier or static_type
            target = model.lookup_function(lookup_type, call.callee, arity, is_const)
            return (target, target is not None, call.qualifier is not None)

        rtype = self._static_type(call.receiver)
        if rtype is None:
            return (None, False, call.qualifier is not None)
        stripped = strip_type(rtype)
        if model.type(stripped) is None:
            return (None, False, call.qualifier is not None)
        object_const = is_const_qualified(rtype) or self._const_through_this(call.receiver)
        target = model.lookup_function(call.qualifier or stripped, call.callee, arity,
                                       object_const)
        return (target, False, call.qualifier is not None)

    def _const_through_this(self, expr: Expr) -> bool:
        """Whether *expr* is member storage of a const ``*this``."""
        if not self.this_const:
            return False
        m = self._written_member(expr)
        return m is not None and not m.is_mutable and "*" not in m.declared_type

    def _static_type(self, expr: Expr) -> Optional[str]:
        m = self._member(expr)
        if m is not None:
            return m.declared_type
        if isinstance(expr, NameRef):
            return self.locals.get(expr.name)
        if isinstance(expr, Unary) and expr.op == "*":
            return self._static_type(expr.operand)
        if isinstance(expr, Cast):
            return expr.type_name
        if isinstance(expr, (Construct, New)):
            return expr.type_name
        if isinstance(expr, Call):
            # function returns are not typed beyond their declaration
            target, _via, _q = self._resolve_call(expr)
            return target.return_type if target is not None else None
        return None


def _collect_decls(body: Sequence[Stmt], out: Dict[str, str]) -> None:
    for stmt in body:
        if isinstance(stmt, Decl):
            out[stmt.name] = stmt.type_name
        elif isinstance(stmt, If):
            _collect_decls(stmt.then, out)
            _collect_decls(stmt.orelse, out)
        elif isinstance(stmt, (Loop, Block)):
            _collect_decls(stmt.body, out)
        elif isinstance(stmt, Try):
            _collect_decls(stmt.body, out)
            for handler in stmt.handlers:
                _collect_decls(handler, out)


__all__ = ["build_model", "ModelBuilder"]
