# tests/test_runner.py
"""
Tests for per-unit orchestration and the batch driver: model-error
skipping, analyzer isolation, deadlines and determinism.
"""

import json
import time
from typing import ClassVar

import pytest

from idiomcheck.aggregator import SkipReason
from idiomcheck.checkers import Checker, CheckerRegistry, default_rule
from idiomcheck.config import RuleConfig
from idiomcheck.diagnostics import INTERNAL_ERROR_RULE, MODEL_ERROR_RULE, TIMEOUT_RULE, Severity
from idiomcheck.errors import ParseFailure
from idiomcheck.inheritance import RULE as INHERIT_RULE, InheritanceChecker
from idiomcheck.runner import DEFAULT_REGISTRY, analyze_batch, analyze_unit
from tests.conftest import (
    bird_penguin_unit, logger_base_unit, make_fn, make_type, make_unit,
)


class ExplodingChecker(Checker):
    name: ClassVar[str] = "exploding"
    rules: ClassVar[dict] = {"TEST-explode": default_rule(Severity.WARNING)}

    def collect_evidence(self, ctx):
        raise RuntimeError("boom")

    def diagnose(self, ctx):
        pass


class SleepingChecker(Checker):
    name: ClassVar[str] = "sleeping"
    rules: ClassVar[dict] = {"TEST-sleep": default_rule(Severity.WARNING)}

    def collect_evidence(self, ctx):
        time.sleep(1.0)

    def diagnose(self, ctx):
        pass


def _registry(*classes):
    registry = CheckerRegistry()
    for cls in classes:
        registry.register(cls)
    return registry


def _broken_unit(unit="broken.cpp"):
    return make_unit(make_type("D", bases=["Missing"], line=4), unit=unit)


class TestAnalyzeUnit:

    def test_findings_and_stats(self, bird_penguin):
        result = analyze_unit(bird_penguin)
        assert result.unit == "birds.cpp"
        assert not result.skipped
        assert [f.rule_id for f in result.findings] == [INHERIT_RULE]
        assert "inheritance_elapsed_ms" in result.stats

    def test_model_error_skips_unit(self):
        result = analyze_unit(_broken_unit())
        assert result.skip_reason is SkipReason.MODEL_ERROR
        (f,) = result.findings
        assert f.rule_id == MODEL_ERROR_RULE
        assert (f.location.unit, f.location.line) == ("broken.cpp", 4)

    def test_internal_error_is_isolated(self, bird_penguin):
        registry = _registry(ExplodingChecker, InheritanceChecker)
        result = analyze_unit(bird_penguin, registry=registry)
        assert [f.rule_id for f in result.findings] == [INTERNAL_ERROR_RULE, INHERIT_RULE]
        assert "analyzer 'exploding' (TEST-explode) failed: RuntimeError: boom" in (
            result.findings[0].message)
        assert [e.analyzer for e in result.internal_errors] == ["exploding"]
        assert not result.skipped

    def test_timeout_discards_partial_results(self, bird_penguin):
        registry = _registry(InheritanceChecker, SleepingChecker)
        result = analyze_unit(bird_penguin, timeout=0.2, registry=registry)
        assert result.skip_reason is SkipReason.TIMEOUT
        assert [f.rule_id for f in result.findings] == [TIMEOUT_RULE]

    def test_generous_timeout(self, bird_penguin):
        result = analyze_unit(bird_penguin, timeout=30.0)
        assert [f.rule_id for f in result.findings] == [INHERIT_RULE]

    def test_all_rules_disabled(self, bird_penguin):
        config = RuleConfig.from_mapping(
            {rule_id: {"enabled": False} for rule_id in DEFAULT_REGISTRY.all_rules()})
        assert analyze_unit(bird_penguin, config=config).findings == ()


class TestAnalyzeBatch:

    def _sources(self):
        return {
            "birds.json": json.dumps(bird_penguin_unit()),
            "logger.json": json.dumps(logger_base_unit()),
            "broken.json": json.dumps(_broken_unit()),
        }

    def test_broken_unit_does_not_stop_the_batch(self):
        batch = analyze_batch(self._sources())
        assert [u.unit for u in batch.analyzed] == ["birds.cpp", "logger.cpp"]
        assert list(batch.skipped) == ["broken.cpp"]
        assert batch.skipped["broken.cpp"].startswith(
            "model-error: unresolved base type 'Missing'")
        rules = {f.rule_id for f in batch.findings}
        assert {INHERIT_RULE, "CTOR-VCALL-error", MODEL_ERROR_RULE} <= rules

    @pytest.mark.parametrize("doc, reason", [
        ({"unit": "a.cpp", "types": 5}, "'types' must be a list"),
        ({"unit": "a.cpp", "types": [["Bird"]]}, "'types' entries must be objects"),
        (make_unit(make_type("A", functions=[make_fn("f", [{"kind": 7}])]), unit="a.cpp"),
         "statement kind must be a string"),
    ])
    def test_malformed_representation_is_skipped(self, doc, reason):
        batch = analyze_batch({"a.json": json.dumps(doc),
                               "birds.json": json.dumps(bird_penguin_unit())})
        assert list(batch.skipped) == ["a.cpp"]
        assert reason in batch.skipped["a.cpp"]
        assert INTERNAL_ERROR_RULE not in {f.rule_id for f in batch.findings}
        assert [u.unit for u in batch.analyzed] == ["birds.cpp"]

    def test_parallel_matches_sequential(self):
        sequential = analyze_batch(self._sources(), jobs=1)
        parallel = analyze_batch(self._sources(), jobs=4)
        assert sequential == parallel
        assert analyze_batch(self._sources(), jobs=4) == parallel

    def test_representation_mappings(self):
        rep = bird_penguin_unit()
        del rep["unit"]
        batch = analyze_batch({"penguin.cpp": rep})
        assert [f.location.unit for f in batch.findings] == ["penguin.cpp"]

    def test_unit_defaults_to_source_path(self):
        text = json.dumps({"types": [], "functions": []})
        batch = analyze_batch({"empty.json": text})
        assert [u.unit for u in batch.units] == ["empty.json"]
        assert batch.findings == ()

    def test_invalid_json(self):
        batch = analyze_batch({"bad.json": "{not json"})
        assert batch.skipped["bad.json"].startswith("model-error: invalid JSON")
        (f,) = batch.findings
        assert f.rule_id == MODEL_ERROR_RULE and f.location.line == 1

    def test_custom_front_end(self):
        class Failing:
            def parse(self, source_text, unit):
                raise ParseFailure("unsupported construct", unit, 7, 3)

        batch = analyze_batch({"w.cpp": "struct W;"}, frontend=Failing())
        assert batch.skipped == {"w.cpp": "model-error: unsupported construct"}

    def test_unexpected_front_end_failure(self):
        class Crashing:
            def parse(self, source_text, unit):
                raise ValueError("corrupt")

        batch = analyze_batch({"w.cpp": ""}, frontend=Crashing())
        (f,) = batch.findings
        assert f.rule_id == INTERNAL_ERROR_RULE
        assert "analyzer 'builder' failed: ValueError: corrupt" in f.message
