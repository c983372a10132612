"""Tests for the ruff, mypy and pip-audit output parsers."""

from __future__ import annotations

import json

import pytest

from warden.analysis.scan_parsers import (
    classify_ruff_code,
    parse_mypy_output,
    parse_pip_audit_json,
    parse_ruff_json,
)
from warden.models import IssueType, Severity


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (None, (IssueType.ERROR, Severity.HIGH)),
        ("F821", (IssueType.ERROR, Severity.HIGH)),
        ("E999", (IssueType.ERROR, Severity.HIGH)),
        ("S105", (IssueType.SECURITY, Severity.MEDIUM)),
        ("PERF401", (IssueType.PERFORMANCE, Severity.LOW)),
        ("B006", (IssueType.WARNING, Severity.MEDIUM)),
        ("C901", (IssueType.WARNING, Severity.MEDIUM)),
        ("I001", (IssueType.STYLE, Severity.LOW)),
        ("F401", (IssueType.STYLE, Severity.LOW)),
    ],
)
def test_classify_ruff_code(code, expected) -> None:
    assert classify_ruff_code(code) == expected


class TestRuff:
    def test_parses_entries(self) -> None:
        output = json.dumps(
            [
                {
                    "code": "F401",
                    "filename": "app/main.py",
                    "location": {"row": 3, "column": 8},
                    "message": "`os` imported but unused",
                    "fix": {"applicability": "safe", "message": "Remove unused import"},
                    "url": "https://docs.astral.sh/ruff/rules/unused-import",
                },
                {
                    "code": "B006",
                    "filename": "app/util.py",
                    "location": {"row": 10, "column": 1},
                    "message": "mutable default",
                    "fix": {"applicability": "unsafe", "message": "Replace with None"},
                },
                {
                    "code": None,
                    "filename": "app/broken.py",
                    "location": {"row": 1, "column": 1},
                    "message": "SyntaxError: invalid syntax",
                    "fix": None,
                },
            ]
        )
        issues = parse_ruff_json(output)

        assert [i.rule for i in issues] == ["F401", "B006", "syntax-error"]
        assert issues[0].auto_fixable
        assert issues[0].line == 3
        assert issues[0].suggestion == "Remove unused import"
        assert issues[0].metadata["tool"] == "ruff"
        assert not issues[1].auto_fixable
        assert issues[2].type == IssueType.ERROR

    def test_empty_output(self) -> None:
        assert parse_ruff_json("  ") == []

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_ruff_json("error: unknown option")


class TestMypy:
    def test_parses_error_lines(self) -> None:
        output = (
            "app/main.py:12: error: Incompatible return value type  [return-value]\n"
            "app/main.py:20:5: error: Name \"x\" is not defined  [name-defined]\n"
            "app/main.py:21: note: See docs\n"
            "Found 2 errors in 1 file\n"
        )
        issues = parse_mypy_output(output)

        assert [(i.file, i.line, i.rule) for i in issues] == [
            ("app/main.py", 12, "return-value"),
            ("app/main.py", 20, "name-defined"),
        ]
        assert all(not i.auto_fixable and i.severity == Severity.HIGH for i in issues)


class TestPipAudit:
    def test_parses_vulnerabilities(self) -> None:
        output = json.dumps(
            {
                "dependencies": [
                    {
                        "name": "jinja2",
                        "version": "3.1.2",
                        "vulns": [
                            {"id": "GHSA-h5c8-rqwp-cp95", "fix_versions": ["3.1.3"], "aliases": []}
                        ],
                    },
                    {"name": "requests", "version": "2.31.0", "vulns": []},
                    {
                        "name": "legacy",
                        "version": "0.1",
                        "vulns": [{"id": "PYSEC-2020-1", "fix_versions": []}],
                    },
                ]
            }
        )
        issues = parse_pip_audit_json(output)

        assert len(issues) == 2
        jinja = issues[0]
        assert jinja.type == IssueType.SECURITY
        assert jinja.auto_fixable
        assert jinja.metadata["package"] == "jinja2"
        assert jinja.metadata["fix_version"] == "3.1.3"
        assert not issues[1].auto_fixable

    def test_top_level_list(self) -> None:
        output = json.dumps([{"name": "a", "version": "1", "vulns": [{"id": "X", "fix_versions": ["2"]}]}])
        assert parse_pip_audit_json(output)[0].rule == "X"

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_pip_audit_json("{not json")
