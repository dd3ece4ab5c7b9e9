# tests/test_construction.py
"""
Tests for virtual dispatch during construction and destruction
(CTOR-VCALL-error / CTOR-VCALL-warning).
"""

from idiomcheck.config import RuleConfig
from idiomcheck.construction import RULE_ERROR, RULE_WARNING, ConstructionChecker
from idiomcheck.diagnostics import Severity, SourceLocation
from tests.conftest import (
    call, expr, make_ctor, make_dtor, make_fn, make_member, make_type, make_unit,
    member, name, run_checker, logger_base_unit,
)


def _base(ctor_body=(), dtor_body=None, extra=(), **type_attrs):
    functions = [make_ctor("Base", ctor_body, line=2)]
    if dtor_body is not None:
        functions.append(make_dtor("Base", dtor_body, line=4))
    functions.append(make_fn("log", [], virtual=True, line=3))
    functions.extend(extra)
    return make_unit(
        make_type("Base", functions=functions, **type_attrs),
        make_type("Derived", bases=["Base"], functions=[make_fn("log", [], line=7)], line=6),
        unit="logger.cpp",
    )


class TestPureVirtualCall:

    def test_direct_call_in_constructor(self):
        (f,) = run_checker(ConstructionChecker, logger_base_unit(pure=True))
        assert f.rule_id == RULE_ERROR
        assert f.severity is Severity.ERROR
        assert f.location == SourceLocation("logger.cpp", 2, 5)
        assert "Base::log()" in f.message and "constructor" in f.message

    def test_indirect_call_through_helper(self):
        rep = logger_base_unit(pure=True)
        base_fns = rep["types"][0]["functions"]
        base_fns[0]["body"] = [expr(call("init"))]
        base_fns.append(make_fn("init", [expr(call("log", line=9))], line=8))
        (f,) = run_checker(ConstructionChecker, rep)
        assert f.rule_id == RULE_ERROR
        assert f.location.line == 9
        assert "Base::Base -> Base::init" in f.message


class TestImplementedVirtualCall:

    def test_warning_names_the_binding(self):
        (f,) = run_checker(ConstructionChecker, logger_base_unit(pure=False))
        assert f.rule_id == RULE_WARNING
        assert f.severity is Severity.WARNING
        assert "binds to 'Base::log()'" in f.message

    def test_destructor(self):
        rep = _base(dtor_body=[expr(call("log", line=5))])
        (f,) = run_checker(ConstructionChecker, rep)
        assert f.rule_id == RULE_WARNING
        assert f.location.line == 5
        assert "destructor" in f.message

    def test_qualified_call_is_intentional(self):
        rep = _base([expr(call("log", qualifier="Base"))])
        assert run_checker(ConstructionChecker, rep) == []

    def test_final_class_has_no_more_derived_override(self):
        rep = _base([expr(call("log"))], final=True)
        del rep["types"][1]
        assert run_checker(ConstructionChecker, rep) == []

    def test_final_function(self):
        rep = _base([expr(call("log"))])
        rep["types"][0]["functions"][1]["final"] = True
        del rep["types"][1]
        assert run_checker(ConstructionChecker, rep) == []

    def test_call_on_another_object(self):
        rep = _base(
            [expr(call("log", receiver=member("peer_")))],
            members=[make_member("peer_", "Derived")],
        )
        assert run_checker(ConstructionChecker, rep) == []

    def test_derived_constructor_binds_to_its_own_override(self):
        rep = _base()
        rep["types"][1]["functions"].insert(0, make_ctor("Derived", [expr(call("log"))], line=8))
        (f,) = run_checker(ConstructionChecker, rep)
        assert f.rule_id == RULE_WARNING
        assert "'Derived'" in f.message and "binds to 'Derived::log()'" in f.message

    def test_member_initializer_call(self):
        rep = _base(members=[make_member("level_")])
        rep["types"][0]["functions"][0]["initializers"] = [
            {"member": "level_", "args": [call("level", line=2)]},
        ]
        rep["types"][0]["functions"].append(
            make_fn("level", [], virtual=True, return_type="int", line=5))
        (f,) = run_checker(ConstructionChecker, rep)
        assert f.rule_id == RULE_WARNING
        assert f.location == SourceLocation("logger.cpp", 2, 5)

    def test_recursive_helpers_terminate(self):
        rep = _base([expr(call("ping"))], extra=[
            make_fn("ping", [expr(call("pong"))]),
            make_fn("pong", [expr(call("ping")), expr(call("log"))]),
        ])
        (f,) = run_checker(ConstructionChecker, rep)
        assert "Base::Base -> Base::ping -> Base::pong" in f.message

    def test_non_virtual_call_is_fine(self):
        rep = _base([expr(call("helper", name("x")))], extra=[
            make_fn("helper", [], params=[("x", "int")]),
        ])
        assert run_checker(ConstructionChecker, rep) == []

    def test_warning_can_be_disabled(self):
        config = RuleConfig.from_mapping({RULE_WARNING: {"enabled": False}})
        assert run_checker(ConstructionChecker, logger_base_unit(pure=False), config) == []
        assert len(run_checker(ConstructionChecker, logger_base_unit(pure=True), config)) == 1
