# tests/test_reporter_cli.py
"""
Tests for the output formats and the command-line entry point.
"""

import json

import pytest

from idiomcheck import __version__
from idiomcheck.aggregator import aggregate_unit, merge_batch
from idiomcheck.diagnostics import Finding, Severity, SourceLocation
from idiomcheck.main import EXIT_ERROR, EXIT_INFRA, EXIT_OK, main
from idiomcheck.reporter import format_gcc, format_json_lines, format_text
from tests.conftest import bird_penguin_unit, logger_base_unit


def _batch():
    finding = Finding("CTOR-VCALL-error", Severity.ERROR, SourceLocation("b.cpp", 2, 5),
                      "call to pure virtual", "do not call it")
    return merge_batch([aggregate_unit("b.cpp", [[finding]])])


@pytest.fixture
def units(tmp_path):
    paths = {}
    for key, rep in (("birds", bird_penguin_unit()), ("logger", logger_base_unit())):
        path = tmp_path / f"{key}.json"
        path.write_text(json.dumps(rep), encoding="utf-8")
        paths[key] = str(path)
    return paths


class TestFormats:

    def test_text(self):
        lines = format_text(_batch()).splitlines()
        assert lines[0] == "b.cpp:2:5: error[CTOR-VCALL-error]: call to pure virtual"
        assert lines[1] == "  = help: do not call it"
        assert lines[-1].startswith("1 unit(s): 1 analyzed")

    def test_text_without_summary(self):
        assert format_text(_batch(), summary=False).count("\n") == 1

    def test_text_color(self):
        plain = format_text(_batch())
        painted = format_text(_batch(), color=True)
        assert "\x1b[" not in plain
        assert "\x1b[" in painted

    def test_json_lines(self):
        (line,) = format_json_lines(_batch()).splitlines()
        assert json.loads(line) == {
            "rule_id": "CTOR-VCALL-error",
            "severity": "error",
            "location": {"unit": "b.cpp", "line": 2, "column": 5},
            "message": "call to pure virtual",
            "suggested_fix": "do not call it",
        }

    def test_gcc(self):
        assert format_gcc(_batch()) == (
            "b.cpp:2:5: error: call to pure virtual [CTOR-VCALL-error]")


class TestMain:

    def test_warnings_only_exit_ok(self, units, capsys):
        assert main([units["birds"], "--color", "never"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "warning[INHERIT-violation]" in out

    def test_error_finding_exit_code(self, units):
        assert main([units["logger"], "--color", "never"]) == EXIT_ERROR

    def test_json_output(self, units, capsys):
        assert main([units["birds"], "--format", "json"]) == EXIT_OK
        records = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [r["rule_id"] for r in records] == ["INHERIT-violation"]

    def test_output_file(self, units, tmp_path):
        out = tmp_path / "report.txt"
        assert main([units["birds"], "--format", "gcc", "-o", str(out)]) == EXIT_OK
        assert "[INHERIT-violation]" in out.read_text(encoding="utf-8")

    def test_config_disables_rule(self, units, tmp_path):
        config = tmp_path / "rules.json"
        config.write_text(json.dumps({"CTOR-VCALL-error": {"enabled": False}}),
                          encoding="utf-8")
        assert main([units["logger"], "-c", str(config)]) == EXIT_OK

    def test_broken_unit_is_reported_not_fatal(self, units, tmp_path, capsys):
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")
        assert main([units["birds"], str(broken), "--color", "never"]) == EXIT_ERROR
        assert "MODEL-error" in capsys.readouterr().out

    def test_list_rules(self, capsys):
        assert main(["--list-rules"]) == EXIT_OK
        out = capsys.readouterr().out
        for rule_id in ("INHERIT-violation", "CONST-bitwise-violation",
                        "CTOR-VCALL-warning", "SEQ-unsequenced-ownership"):
            assert rule_id in out

    @pytest.mark.parametrize("argv", [
        [],
        ["missing.json"],
        ["--jobs", "0", "x.json"],
        ["-c", "absent-rules.json", "x.json"],
    ])
    def test_infrastructure_failures(self, argv, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert main(argv) == EXIT_INFRA

    def test_config_with_bad_options(self, units, tmp_path):
        config = tmp_path / "rules.json"
        config.write_text(json.dumps(
            {"INHERIT-violation": {"options": {"patterns": "coupled-setters"}}}),
            encoding="utf-8")
        assert main([units["birds"], "-c", str(config)]) == EXIT_INFRA

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert __version__ in capsys.readouterr().out
