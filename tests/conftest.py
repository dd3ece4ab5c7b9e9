# tests/conftest.py
"""
Shared builders for program-representation dictionaries.

Every helper returns plain dicts in the JSON shape JsonFrontEnd accepts,
so tests read close to the C++ they describe::

    make_type("Bird", functions=[
        make_fn("fly", [expr(call("flap"))], virtual=True, line=3),
    ])
"""

import pytest

from idiomcheck.builder import build_model
from idiomcheck.checkers import CheckerContext
from idiomcheck.config import DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

def _at(node, line):
    if line is not None:
        node["line"] = line
        node["column"] = 5
    return node


def call(callee, *args, receiver=None, qualifier=None, line=None):
    node = {"kind": "call", "callee": callee, "args": list(args)}
    if receiver is not None:
        node["receiver"] = receiver
    if qualifier is not None:
        node["qualifier"] = qualifier
    return _at(node, line)


def construct(type_name, *args, line=None):
    return _at({"kind": "construct", "type": type_name, "args": list(args)}, line)


def new(type_name, *args, line=None):
    return _at({"kind": "new", "type": type_name, "args": list(args)}, line)


def member(name, obj=None, line=None):
    node = {"kind": "member", "name": name}
    if obj is not None:
        node["object"] = obj
    return _at(node, line)


def name(n, line=None):
    return _at({"kind": "name", "name": n}, line)


def this():
    return {"kind": "this"}


def deref(operand):
    return {"kind": "unary", "op": "*", "operand": operand}


def lit(value):
    return {"kind": "literal", "value": value}


def assign(target, value, op="=", line=None):
    return _at({"kind": "assign", "target": target, "value": value, "op": op}, line)


def unary(op, operand, line=None):
    return _at({"kind": "unary", "op": op, "operand": operand}, line)


def binary(op, left, right):
    return {"kind": "binary", "op": op, "left": left, "right": right}


def cast(kind, type_name, operand):
    return {"kind": "cast", "cast": kind, "type": type_name, "operand": operand}


def const_this(type_name):
    """``static_cast<const T&>(*this)``"""
    return cast("static_cast", f"const {type_name}&", deref(this()))


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

def expr(e, line=None):
    return _at({"kind": "expr", "expr": e}, line)


def ret(e=None, line=None):
    node = {"kind": "return"}
    if e is not None:
        node["expr"] = e
    return _at(node, line)


def throw(e=None, line=None):
    node = {"kind": "throw"}
    if e is not None:
        node["expr"] = e
    return _at(node, line)


def decl(n, type_name, init=None, line=None):
    node = {"kind": "decl", "name": n, "type": type_name}
    if init is not None:
        node["init"] = init
    return _at(node, line)


def if_(cond, then, orelse=None):
    node = {"kind": "if", "cond": cond, "then": list(then)}
    if orelse is not None:
        node["else"] = list(orelse)
    return node


def loop(body, cond=None):
    node = {"kind": "loop", "body": list(body)}
    if cond is not None:
        node["cond"] = cond
    return node


def block(*body):
    return {"kind": "block", "body": list(body)}


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

def make_fn(fn_name, body=None, *, params=(), line=1, **attrs):
    """A function declaration; ``body=None`` declares without defining.

    Keyword attributes map onto representation keys (``const``,
    ``virtual``, ``pure``, ``final``, ``noexcept``, ``throws``, ``kind``,
    ``return_type``, ``overload_group``, ``initializers``).
    """
    node = {
        "name": fn_name,
        "params": [{"name": n, "type": t} for n, t in params],
        "body": body,
        "line": line,
        "column": 1,
    }
    node.update(attrs)
    return node


def make_ctor(type_name, body=(), line=1, **attrs):
    return make_fn(type_name, list(body), kind="constructor", line=line, **attrs)


def make_dtor(type_name, body=(), line=1, **attrs):
    return make_fn(f"~{type_name}", list(body), kind="destructor", line=line, **attrs)


def make_member(n, type_name="int", **attrs):
    node = {"name": n, "type": type_name}
    node.update(attrs)
    return node


def make_type(type_name, *, bases=(), members=(), functions=(), line=1, **attrs):
    """``bases`` items are names (public) or ``(name, access)`` tuples."""
    node = {
        "name": type_name,
        "line": line,
        "column": 1,
        "bases": [
            {"name": b, "access": "public"} if isinstance(b, str)
            else {"name": b[0], "access": b[1]}
            for b in bases
        ],
        "members": list(members),
        "functions": list(functions),
    }
    node.update(attrs)
    return node


def make_unit(*types, unit="unit.cpp", functions=()):
    return {"unit": unit, "types": list(types), "functions": list(functions)}


def context_for(rep, config=DEFAULT_CONFIG):
    return CheckerContext.for_model(build_model(rep), config)


def run_checker(checker_cls, rep, config=DEFAULT_CONFIG):
    """Build the model of *rep* and run one checker over it."""
    return checker_cls().run(context_for(rep, config))


# ---------------------------------------------------------------------------
# Canonical scenarios
# ---------------------------------------------------------------------------

def bird_penguin_unit(unit="birds.cpp"):
    """``Penguin : public Bird`` whose ``fly()`` always throws."""
    return make_unit(
        make_type("Bird", functions=[
            make_fn("fly", [expr(call("flapWings"))], virtual=True, line=3),
            make_fn("flapWings", [], line=4),
        ], line=1),
        make_type("Penguin", bases=["Bird"], functions=[
            make_fn("fly", [throw(construct("std::logic_error", lit('"cannot fly"')), line=9)],
                    line=8),
        ], line=7),
        unit=unit,
    )


def logger_base_unit(pure=True, unit="logger.cpp"):
    """Base constructor calling its own virtual ``log()``."""
    log_fn = (make_fn("log", None, virtual=True, pure=True, line=3) if pure
              else make_fn("log", [], virtual=True, line=3))
    return make_unit(
        make_type("Base", functions=[
            make_ctor("Base", [expr(call("log", line=2))], line=2),
            log_fn,
        ], line=1),
        make_type("Derived", bases=["Base"], functions=[
            make_fn("log", [], line=7),
        ], line=6),
        unit=unit,
    )


@pytest.fixture
def bird_penguin():
    return bird_penguin_unit()
