# tests/test_constness.py
"""
Tests for the const-correctness checker: bitwise-constness writes,
suspicious mutable writes and duplicated const/non-const overloads.
"""

import pytest

from idiomcheck.constness import (
    RULE_BITWISE, RULE_DUPLICATE, RULE_MUTABLE, ConstnessChecker,
)
from idiomcheck.diagnostics import Severity, SourceLocation
from tests.conftest import (
    assign, binary, call, cast, const_this, deref, expr, if_, lit, loop,
    make_fn, make_member, make_type, make_unit, member, name, ret, this, unary,
    context_for as _ctx,
)


def _rules(findings):
    return [f.rule_id for f in findings]


def _counter(*functions, members=None):
    members = members or [make_member("count_")]
    return make_unit(make_type("Counter", members=members, functions=list(functions)),
                     unit="counter.cpp")


class TestBitwiseConstness:

    def test_direct_write(self):
        rep = _counter(make_fn("get", [
            expr(assign(name("count_"), lit("0"), line=5)),
            ret(name("count_")),
        ], const=True, return_type="int", line=4))
        (f,) = ConstnessChecker().run(_ctx(rep))
        assert f.rule_id == RULE_BITWISE
        assert f.severity is Severity.ERROR
        assert f.location == SourceLocation("counter.cpp", 5, 5)
        assert "Counter::count_" in f.message

    def test_write_through_helper(self):
        rep = _counter(
            make_fn("report", [expr(call("reset"))], const=True),
            make_fn("reset", [expr(assign(name("count_"), lit("0"), line=9))], line=8),
        )
        (f,) = ConstnessChecker().run(_ctx(rep))
        assert f.rule_id == RULE_BITWISE
        assert f.location.line == 9
        assert "via 'Counter::reset'" in f.message

    def test_shared_helper_reported_once(self):
        rep = _counter(
            make_fn("a", [expr(call("touch"))], const=True),
            make_fn("b", [expr(call("touch"))], const=True),
            make_fn("touch", [expr(unary("++", name("count_"), line=7))], const=True),
        )
        assert _rules(ConstnessChecker().run(_ctx(rep))) == [RULE_BITWISE]

    def test_non_const_function_may_write(self):
        rep = _counter(make_fn("reset", [expr(assign(name("count_"), lit("0")))]))
        assert ConstnessChecker().run(_ctx(rep)) == []

    def test_write_to_other_object_is_not_a_member_write(self):
        rep = _counter(make_fn("copyTo", [
            expr(assign(member("count_", name("other")), lit("0"))),
        ], params=[("other", "Counter&")], const=True))
        assert ConstnessChecker().run(_ctx(rep)) == []


class TestMutableCaching:

    MEMBERS = [
        make_member("cache_", mutable=True),
        make_member("valid_", "bool", mutable=True),
    ]

    def test_guarded_cache_is_accepted(self):
        rep = _counter(
            make_fn("value", [
                if_(unary("!", name("valid_")), [
                    expr(assign(name("cache_"), call("compute"))),
                    expr(assign(name("valid_"), lit("true"))),
                ]),
                ret(name("cache_")),
            ], const=True, return_type="int"),
            make_fn("compute", [ret(lit("42"))], const=True, return_type="int"),
            members=self.MEMBERS,
        )
        assert ConstnessChecker().run(_ctx(rep)) == []

    def test_unconditional_write(self):
        rep = _counter(
            make_fn("get", [
                expr(unary("++", name("hits_"), line=4)),
                ret(lit("1")),
            ], const=True, return_type="int"),
            members=[make_member("hits_", mutable=True)],
        )
        (f,) = ConstnessChecker().run(_ctx(rep))
        assert f.rule_id == RULE_MUTABLE
        assert f.severity is Severity.INFO
        assert "unconditionally" in f.message

    def test_write_in_loop(self):
        rep = _counter(
            make_fn("scan", [
                loop([expr(assign(name("cache_"), lit("1")))], cond=name("more")),
                ret(name("cache_")),
            ], const=True, return_type="int"),
            members=self.MEMBERS,
        )
        (f,) = ConstnessChecker().run(_ctx(rep))
        assert f.rule_id == RULE_MUTABLE and "inside a loop" in f.message

    def test_write_never_read(self):
        rep = _counter(
            make_fn("get", [
                if_(name("verbose"), [expr(assign(name("cache_"), lit("1")))]),
                ret(lit("0")),
            ], const=True, return_type="int"),
            members=self.MEMBERS,
        )
        (f,) = ConstnessChecker().run(_ctx(rep))
        assert f.rule_id == RULE_MUTABLE and "never read" in f.message


def _text(non_const_body, const_return="const char&", non_const_return="char&",
          params=(("i", "std::size_t"),)):
    return make_unit(make_type("Text", members=[make_member("data_", "std::string")], functions=[
        make_fn("at", [ret(binary("[]", name("data_"), name("i")))],
                params=params, const=True, return_type=const_return, line=3),
        make_fn("at", non_const_body, params=params, return_type=non_const_return, line=6),
    ]), unit="text.cpp")


def _delegate(receiver, *args):
    return call("at", *args, receiver=receiver)


class TestDuplicatedOverload:

    @pytest.mark.parametrize("receiver", [
        const_this("Text"),
        cast("static_cast", "const Text*", this()),
        cast("const_cast", "const Text*", this()),
        call("as_const", deref(this()), qualifier="std"),
    ], ids=["static_cast-ref", "static_cast-ptr", "const_cast-ptr", "as_const"])
    def test_delegation_is_accepted(self, receiver):
        body = [ret(cast("const_cast", "char&", _delegate(receiver, name("i"))))]
        assert ConstnessChecker().run(_ctx(_text(body))) == []

    def test_by_value_result_needs_no_const_cast(self):
        body = [ret(_delegate(const_this("Text"), name("i")))]
        rep = _text(body, const_return="char", non_const_return="char")
        assert ConstnessChecker().run(_ctx(rep)) == []

    def test_void_delegation(self):
        rep = make_unit(make_type("Log", functions=[
            make_fn("flush", [], const=True),
            make_fn("flush", [expr(call("flush", receiver=const_this("Log")))]),
        ]))
        assert ConstnessChecker().run(_ctx(rep)) == []

    def test_copied_logic(self):
        body = [ret(binary("[]", name("data_"), name("i")))]
        (f,) = ConstnessChecker().run(_ctx(_text(body)))
        assert f.rule_id == RULE_DUPLICATE
        assert f.severity is Severity.WARNING
        assert f.location == SourceLocation("text.cpp", 6, 1)
        assert "Text::at(std::size_t) const" in f.message
        assert "static_cast<const Text&>(*this).at(i)" in f.suggested_fix

    def test_extra_statement(self):
        body = [
            expr(call("log")),
            ret(cast("const_cast", "char&", _delegate(const_this("Text"), name("i")))),
        ]
        assert _rules(ConstnessChecker().run(_ctx(_text(body)))) == [RULE_DUPLICATE]

    def test_non_const_receiver_recurses(self):
        body = [ret(cast("const_cast", "char&", _delegate(this(), name("i"))))]
        assert _rules(ConstnessChecker().run(_ctx(_text(body)))) == [RULE_DUPLICATE]

    def test_arguments_must_forward_parameters(self):
        params = (("a", "int"), ("b", "int"))
        body = [ret(cast("const_cast", "char&",
                         _delegate(const_this("Text"), name("b"), name("a"))))]
        rep = _text(body, params=params)
        rep["types"][0]["functions"][0]["body"] = [ret(name("data_"))]
        assert _rules(ConstnessChecker().run(_ctx(rep))) == [RULE_DUPLICATE]

    def test_declaration_only_pair_is_ignored(self):
        rep = _text(None)
        assert ConstnessChecker().run(_ctx(rep)) == []


def _outer(call_name, inner_type="Inner"):
    inner = make_type("Inner", members=[make_member("v_")], functions=[
        make_fn("get", [ret(name("v_"))], const=True, return_type="int"),
        make_fn("get", None, return_type="int"),
        make_fn("bump", None),
    ])
    outer = make_type("Outer", members=[make_member("inner_", inner_type)], functions=[
        make_fn("peek", [ret(call(call_name, receiver=member("inner_")))],
                const=True, return_type="int", line=8),
    ])
    return make_unit(inner, outer, unit="outer.cpp")


class TestCallsOnMembers:

    def test_const_overload_selected_through_const_this(self):
        assert ConstnessChecker().run(_ctx(_outer("get"))) == []

    def test_non_const_call_on_member_object(self):
        (f,) = ConstnessChecker().run(_ctx(_outer("bump")))
        assert f.rule_id == RULE_BITWISE
        assert "Outer::inner_" in f.message

    def test_pointer_member_pointee_is_not_const(self):
        assert ConstnessChecker().run(_ctx(_outer("bump", inner_type="Inner*"))) == []
