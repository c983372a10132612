"""Parsers that turn check-tool output into ``CodeIssue`` lists.

  - ruff (``--output-format=json``): lint, security, performance findings
  - mypy (text): type-check errors
  - pip-audit (``-f json``): vulnerable dependencies

Malformed output raises ``ValueError``; the caller decides whether a
check that produced garbage fails the scan.
"""

from __future__ import annotations

import json
import re
from typing import Any

from warden.models import CodeIssue, IssueType, Severity

# Syntax errors, invalid comparisons, misplaced statements, undefined names
_RUFF_ERROR_PREFIXES = ("E9", "F63", "F7", "F82")
_RUFF_WARNING_PREFIXES = ("B", "W", "C90")

_MYPY_LINE = re.compile(
    r"^(?P<file>[^:\n]+):(?P<line>\d+)(?::\d+)?: error: (?P<msg>.*?)(?:\s+\[(?P<code>[a-z0-9-]+)\])?\s*$"
)


def classify_ruff_code(code: str | None) -> tuple[IssueType, Severity]:
    """Map a ruff rule code to issue type and severity."""
    if not code or code.startswith(_RUFF_ERROR_PREFIXES):
        return IssueType.ERROR, Severity.HIGH
    if code.startswith("S"):
        return IssueType.SECURITY, Severity.MEDIUM
    if code.startswith("PERF"):
        return IssueType.PERFORMANCE, Severity.LOW
    if code.startswith(_RUFF_WARNING_PREFIXES):
        return IssueType.WARNING, Severity.MEDIUM
    return IssueType.STYLE, Severity.LOW


def parse_ruff_json(output: str) -> list[CodeIssue]:
    text = output.strip()
    if not text:
        return []
    try:
        entries = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"ruff output is not JSON: {exc}") from exc
    if not isinstance(entries, list):
        raise ValueError("ruff output is not a list")

    issues: list[CodeIssue] = []
    for entry in entries:
        code = entry.get("code")
        issue_type, severity = classify_ruff_code(code)
        fix = entry.get("fix") or None
        # ``ruff --fix`` only applies safe fixes
        fixable = fix is not None and fix.get("applicability", "safe") == "safe"
        location = entry.get("location") or {}
        issues.append(
            CodeIssue(
                type=issue_type,
                severity=severity,
                file=str(entry.get("filename", "")),
                line=int(location.get("row") or 0),
                message=str(entry.get("message", "")),
                suggestion=str(fix.get("message") or "") if fix else "",
                auto_fixable=fixable,
                rule=code or "syntax-error",
                metadata={"tool": "ruff", "url": entry.get("url")},
            )
        )
    return issues


def parse_mypy_output(output: str) -> list[CodeIssue]:
    issues: list[CodeIssue] = []
    for raw in output.splitlines():
        match = _MYPY_LINE.match(raw.strip())
        if match is None:
            continue
        issues.append(
            CodeIssue(
                type=IssueType.ERROR,
                severity=Severity.HIGH,
                file=match["file"],
                line=int(match["line"]),
                message=match["msg"],
                auto_fixable=False,
                rule=match["code"] or "mypy",
                metadata={"tool": "mypy"},
            )
        )
    return issues


def parse_pip_audit_json(output: str) -> list[CodeIssue]:
    text = output.strip()
    if not text:
        return []
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"pip-audit output is not JSON: {exc}") from exc
    # Older releases print the dependency list at top level
    dependencies = data.get("dependencies", []) if isinstance(data, dict) else data
    if not isinstance(dependencies, list):
        raise ValueError("pip-audit output has no dependency list")

    issues: list[CodeIssue] = []
    for dep in dependencies:
        name = dep.get("name", "")
        version = dep.get("version", "")
        for vuln in dep.get("vulns") or []:
            fix_versions = [str(v) for v in vuln.get("fix_versions") or []]
            fix_to = fix_versions[0] if fix_versions else ""
            issues.append(
                CodeIssue(
                    type=IssueType.SECURITY,
                    severity=Severity.MEDIUM,
                    file="requirements",
                    message=f"{name} {version}: {vuln.get('id', 'unknown advisory')}",
                    suggestion=f"upgrade {name} to {fix_to}" if fix_to else "",
                    auto_fixable=bool(fix_to),
                    rule=str(vuln.get("id", "")),
                    metadata={
                        "tool": "pip-audit",
                        "package": name,
                        "version": version,
                        "fix_version": fix_to,
                        "aliases": vuln.get("aliases") or [],
                    },
                )
            )
    return issues
