"""Tests for ToolFixStrategy."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import ScriptedRunner, failed

from warden.analysis.fixers import FixStrategy, ToolFixStrategy
from warden.models import CodeIssue, IssueType, Severity


def _ruff_issue(**overrides) -> CodeIssue:
    fields = {
        "type": IssueType.STYLE,
        "severity": Severity.LOW,
        "file": "app/main.py",
        "line": 3,
        "message": "unused import",
        "auto_fixable": True,
        "rule": "F401",
        "metadata": {"tool": "ruff"},
    }
    fields.update(overrides)
    return CodeIssue(**fields)


def _audit_issue(fix_version: str = "3.1.3") -> CodeIssue:
    return CodeIssue(
        type=IssueType.SECURITY,
        severity=Severity.MEDIUM,
        file="requirements",
        message="jinja2 3.1.2: GHSA-1",
        auto_fixable=bool(fix_version),
        rule="GHSA-1",
        metadata={
            "tool": "pip-audit",
            "package": "jinja2",
            "version": "3.1.2",
            "fix_version": fix_version,
        },
    )


@pytest.fixture()
def strategy(runner: ScriptedRunner, tmp_path: Path) -> ToolFixStrategy:
    return ToolFixStrategy(runner, project_root=tmp_path)


class TestGenerate:
    def test_ruff_plan(self, strategy: ToolFixStrategy) -> None:
        plan = strategy.generate(_ruff_issue())
        assert plan is not None
        assert plan.command == "ruff check --fix --select F401 app/main.py"
        assert plan.files == ("app/main.py",)
        assert plan.revert_command is None

    def test_pip_audit_plan_has_revert(self, strategy: ToolFixStrategy) -> None:
        plan = strategy.generate(_audit_issue())
        assert plan is not None
        assert plan.command == "pip install jinja2==3.1.3"
        assert plan.revert_command == "pip install jinja2==3.1.2"
        assert plan.files == ()

    def test_not_fixable(self, strategy: ToolFixStrategy) -> None:
        assert strategy.generate(_ruff_issue(auto_fixable=False)) is None
        assert strategy.generate(_ruff_issue(metadata={"tool": "mypy"})) is None

    def test_paths_are_quoted(self, strategy: ToolFixStrategy) -> None:
        plan = strategy.generate(_ruff_issue(file="my app/main.py"))
        assert plan is not None
        assert plan.command.endswith("'my app/main.py'")

    def test_protocol(self, strategy: ToolFixStrategy) -> None:
        assert isinstance(strategy, FixStrategy)


class TestApply:
    @pytest.mark.asyncio
    async def test_apply_reports_command_success(
        self, strategy: ToolFixStrategy, runner: ScriptedRunner
    ) -> None:
        plan = strategy.generate(_ruff_issue())
        assert plan is not None
        assert await strategy.apply(plan)
        assert runner.calls == [plan.command]

    @pytest.mark.asyncio
    async def test_apply_failure(self, strategy: ToolFixStrategy, runner: ScriptedRunner) -> None:
        runner.on("ruff check --fix", failed("ruff"))
        plan = strategy.generate(_ruff_issue())
        assert plan is not None
        assert not await strategy.apply(plan)
