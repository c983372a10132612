"""Tests for HealAgent: scan, repair batches, rollback, refactor, validation.

Covers:
  - Scan output of ruff, mypy and pip-audit becomes one issue set
  - Undeclared capabilities are rejected before any command runs
  - Repair batches succeed only with fixed issues and passing tests
  - Rollback restores files, runs revert commands and is idempotent
  - Safety constraints: test suite, explicit flags, protected paths
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import ScriptedRunner, failed, ok

from warden.agents.heal import HealAgent, default_heal_config
from warden.config import AgentOverride, HealConfig, WardenConfig
from warden.core.errors import CAPABILITY_NOT_DECLARED, EXECUTION_FAILED, SAFETY_DENIED
from warden.models import (
    ActionStatus,
    AgentAction,
    CommandResult,
    RepairResult,
    ScanReport,
    Severity,
    ValidationReport,
)

LINT = "ruff check --output-format=json"
TYPES = "mypy"
AUDIT = "pip-audit"
TESTS = "pytest -q"
RUFF_FIX = "ruff check --fix --select F632"

RUFF_FINDINGS = [
    {
        "code": "F632",
        "filename": "pkg/mod.py",
        "location": {"row": 3},
        "message": "Use `==` to compare constant literals",
        "fix": {"applicability": "safe", "message": "Replace `is` with `==`"},
    },
    {
        "code": "B006",
        "filename": "pkg/mod.py",
        "location": {"row": 9},
        "message": "Do not use mutable data structures for argument defaults",
        "fix": None,
    },
]
AUDIT_FINDINGS = {
    "dependencies": [
        {
            "name": "requests",
            "version": "2.0.0",
            "vulns": [{"id": "PYSEC-2023-74", "fix_versions": ["2.31.0"]}],
        }
    ]
}


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    (root / "pkg").mkdir(parents=True)
    (root / "tests").mkdir()
    (root / "tests" / "test_mod.py").write_text("def test_ok():\n    assert True\n")
    (root / "pkg" / "mod.py").write_text("x = 1\n")
    return root


@pytest.fixture()
def heal_settings(settings: WardenConfig, project: Path) -> WardenConfig:
    return settings.model_copy(
        update={
            "heal": HealConfig(project_root=project),
            "agents": {"heal": AgentOverride(max_retries=0)},
        }
    )


@pytest.fixture()
def scan_runner(runner: ScriptedRunner) -> ScriptedRunner:
    runner.on(LINT, ok(LINT, json.dumps(RUFF_FINDINGS)))
    runner.on(TYPES, ok(TYPES, "pkg/util.py:4: error: Incompatible return value  [return-value]"))
    runner.on(AUDIT, ok(AUDIT, json.dumps(AUDIT_FINDINGS)))
    return runner


@pytest.fixture()
def agent(heal_settings, recorder, alerts, scan_runner) -> HealAgent:
    return HealAgent(settings=heal_settings, recorder=recorder, runner=scan_runner, alerts=alerts)


def _action(action_type: str, **payload) -> AgentAction:
    return AgentAction(type=action_type, payload=payload, requested_by="tester")


async def _scan(agent: HealAgent) -> ScanReport:
    result = await agent.execute(_action("scan_code"))
    assert result.success, result.message
    return result.detail


class TestScan:
    @pytest.mark.asyncio
    async def test_issues_from_all_checks(self, agent: HealAgent) -> None:
        report = await _scan(agent)

        assert report.count_by("type") == {"error": 2, "warning": 1, "security": 1}
        assert set(report.checks) == {"lint", "type_check", "audit"}
        fixable = [i for i in agent.issues if i.auto_fixable]
        assert {i.rule for i in fixable} == {"F632", "PYSEC-2023-74"}

    @pytest.mark.asyncio
    async def test_unlaunchable_check_fails_scan(self, agent, scan_runner) -> None:
        scan_runner.on(TYPES, CommandResult(command=TYPES, success=False, error="not found"))

        result = await agent.execute(_action("scan_code"))

        assert result.status == ActionStatus.FAILED
        assert result.error_code == EXECUTION_FAILED
        assert "type_check" in result.message

    @pytest.mark.asyncio
    async def test_garbage_output_fails_scan(self, agent, scan_runner) -> None:
        scan_runner.on(LINT, ok(LINT, "<html>oops</html>"))
        result = await agent.execute(_action("scan_code"))
        assert result.status == ActionStatus.FAILED
        assert "lint output unreadable" in result.message


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_undeclared_capability_is_rejected(self, heal_settings, scan_runner) -> None:
        config = default_heal_config().model_copy(
            update={"capabilities": frozenset({"scan_code"})}
        )
        agent = HealAgent(config, settings=heal_settings, runner=scan_runner)

        result = await agent.execute(_action("fix_errors", preserve_functionality=True))

        assert result.status == ActionStatus.REJECTED
        assert result.error_code == CAPABILITY_NOT_DECLARED
        assert result.attempts == 0
        assert scan_runner.calls == []


class TestSafetyConstraints:
    @pytest.mark.asyncio
    async def test_fix_without_test_suite_is_denied(self, settings, tmp_path, scan_runner) -> None:
        bare = tmp_path / "bare"
        bare.mkdir()
        agent = HealAgent(
            settings=settings.model_copy(update={"heal": HealConfig(project_root=bare)}),
            runner=scan_runner,
        )

        result = await agent.execute(_action("fix_errors", preserve_functionality=True))

        assert result.status == ActionStatus.DENIED
        assert result.error_code == SAFETY_DENIED
        assert result.denied_by == "no_breaking_changes_without_tests"
        assert "no test suite" in result.message
        assert scan_runner.calls == []

    @pytest.mark.asyncio
    async def test_fix_requires_preserve_functionality_flag(self, agent, scan_runner) -> None:
        result = await agent.execute(_action("fix_errors"))
        assert result.denied_by == "preserve_functionality"
        assert scan_runner.calls == []

    @pytest.mark.asyncio
    async def test_skip_validation_is_denied_for_warnings(self, agent) -> None:
        result = await agent.execute(_action("fix_warnings", skip_validation=True))
        assert result.denied_by == "maintain_code_quality"

    @pytest.mark.asyncio
    async def test_protected_paths_need_security_review(self, agent, scan_runner) -> None:
        result = await agent.execute(_action("fix_security_issues", files=["auth/login.py"]))
        assert result.denied_by == "no_security_compromises"
        assert "auth/login.py" in result.message

        allowed = await agent.execute(
            _action("fix_security_issues", files=["auth/login.py"], security_review=True)
        )
        assert allowed.success
        assert "nothing to fix" in allowed.message

    @pytest.mark.asyncio
    async def test_scan_is_not_gated(self, settings, tmp_path, scan_runner) -> None:
        bare = tmp_path / "bare"
        bare.mkdir()
        agent = HealAgent(
            settings=settings.model_copy(update={"heal": HealConfig(project_root=bare)}),
            runner=scan_runner,
        )
        assert (await agent.execute(_action("scan_code"))).success


class TestRepairBatch:
    @pytest.mark.asyncio
    async def test_fixed_and_tests_pass(self, agent, scan_runner, recorder) -> None:
        await _scan(agent)
        scan_runner.on(RUFF_FIX, ok(RUFF_FIX))

        result = await agent.execute(_action("fix_errors", preserve_functionality=True))

        assert result.success
        repair: RepairResult = result.detail
        assert repair.success
        assert repair.issues_fixed == 1
        # mypy finding has no automatic fix
        assert repair.issues_remaining == 0
        assert repair.change_id is not None
        assert "F632" not in {i.rule for i in agent.issues}
        assert agent.repair_history == [repair]
        assert scan_runner.calls[-1] == TESTS
        assert any(r.category == "repair" for r in recorder.records)

    @pytest.mark.asyncio
    async def test_fixed_but_tests_fail(self, agent, scan_runner, alerts) -> None:
        await _scan(agent)
        scan_runner.on(RUFF_FIX, ok(RUFF_FIX))
        scan_runner.on(TESTS, failed(TESTS, "1 failed"))

        result = await agent.execute(_action("fix_errors", preserve_functionality=True))

        assert result.status == ActionStatus.FAILED
        repair: RepairResult = result.detail
        assert repair.issues_fixed == 1
        assert not repair.success
        assert "rollback with change_id" in result.message
        assert [a.severity for a in alerts.alerts] == [Severity.HIGH]
        # The batch failed, so its issue is still pending
        assert "F632" in {i.rule for i in agent.issues}

    @pytest.mark.asyncio
    async def test_nothing_fixed_is_a_failed_batch(self, agent, scan_runner, alerts) -> None:
        await _scan(agent)
        scan_runner.on(RUFF_FIX, failed(RUFF_FIX, "error: cannot fix"))

        result = await agent.execute(_action("fix_errors", preserve_functionality=True))

        repair: RepairResult = result.detail
        assert not result.success
        assert repair.issues_fixed == 0
        assert repair.issues_remaining == 1
        assert repair.test_results is not None and repair.test_results.success
        assert result.message == "no fix could be applied"
        assert alerts.alerts == []

    @pytest.mark.asyncio
    async def test_no_matching_issues(self, agent) -> None:
        result = await agent.execute(_action("optimize_performance"))
        assert result.success
        assert result.detail is None
        assert "nothing to fix" in result.message

    @pytest.mark.asyncio
    async def test_files_filter(self, agent, scan_runner) -> None:
        await _scan(agent)
        result = await agent.execute(
            _action("fix_errors", preserve_functionality=True, files=["other.py"])
        )
        assert "nothing to fix" in result.message
        assert not any(call.startswith(RUFF_FIX) for call in scan_runner.calls)

    @pytest.mark.asyncio
    async def test_rescan_reports_new_issues(self, agent, scan_runner) -> None:
        await _scan(agent)
        new_finding = {
            "code": "F401",
            "filename": "pkg/mod.py",
            "location": {"row": 1},
            "message": "`os` imported but unused",
            "fix": {"applicability": "safe"},
        }
        scan_runner.on(RUFF_FIX, ok(RUFF_FIX))
        scan_runner.on(LINT, ok(LINT, json.dumps([new_finding])))

        result = await agent.execute(
            _action("fix_errors", preserve_functionality=True, rescan=True)
        )

        assert [i.rule for i in result.detail.new_issues] == ["F401"]

    @pytest.mark.asyncio
    async def test_security_upgrade_registers_revert(self, agent, scan_runner) -> None:
        await _scan(agent)

        result = await agent.execute(_action("fix_security_issues"))

        assert result.success
        assert "pip install requests==2.31.0" in scan_runner.calls
        change = agent.ledger.get(result.detail.change_id)
        assert change is not None
        assert change.revert_commands == ["pip install requests==2.0.0"]


class TestRollback:
    @pytest.mark.asyncio
    async def test_rollback_is_idempotent(self, agent, scan_runner, project) -> None:
        target = project / "pkg" / "mod.py"
        original = target.read_text()
        await _scan(agent)
        scan_runner.on(RUFF_FIX, ok(RUFF_FIX), effect=lambda _: target.write_text("x == 1\n"))

        fixed = await agent.execute(_action("fix_errors", preserve_functionality=True))
        assert target.read_text() == "x == 1\n"
        change_id = fixed.detail.change_id

        first = await agent.execute(_action("rollback_changes", change_id=change_id))
        assert first.success
        assert first.detail.complete
        assert target.read_text() == original

        target.write_text("edited later\n")
        second = await agent.execute(_action("rollback_changes", change_id=change_id))
        assert second.success
        assert second.detail.already_reverted
        assert target.read_text() == "edited later\n"

    @pytest.mark.asyncio
    async def test_rollback_runs_revert_commands(self, agent, scan_runner) -> None:
        await _scan(agent)
        change_id = (await agent.execute(_action("fix_security_issues"))).detail.change_id

        result = await agent.execute(_action("rollback_changes", change_id=change_id))

        assert result.success
        assert scan_runner.calls[-1] == "pip install requests==2.0.0"

    @pytest.mark.asyncio
    async def test_rollback_survives_restart(self, agent, heal_settings, scan_runner) -> None:
        await _scan(agent)
        scan_runner.on(RUFF_FIX, ok(RUFF_FIX))
        change_id = (
            await agent.execute(_action("fix_errors", preserve_functionality=True))
        ).detail.change_id

        fresh = HealAgent(settings=heal_settings, runner=scan_runner)
        result = await fresh.execute(_action("rollback_changes", change_id=change_id))

        assert result.success

    @pytest.mark.asyncio
    async def test_unknown_or_missing_change_id(self, agent) -> None:
        missing = await agent.execute(_action("rollback_changes"))
        assert not missing.success
        assert "change_id" in missing.message

        unknown = await agent.execute(_action("rollback_changes", change_id="deadbeef"))
        assert not unknown.success
        assert "unknown change set" in unknown.message


class TestRetriedBatch:
    @pytest.fixture()
    def retrying(self, heal_settings, recorder, alerts, scan_runner) -> HealAgent:
        settings = heal_settings.model_copy(
            update={"agents": {"heal": AgentOverride(max_retries=1)}}
        )
        return HealAgent(settings=settings, recorder=recorder, runner=scan_runner, alerts=alerts)

    @pytest.mark.asyncio
    async def test_rollback_restores_content_before_first_attempt(
        self, retrying: HealAgent, scan_runner, project, alerts
    ) -> None:
        target = project / "pkg" / "mod.py"
        original = target.read_text()
        await _scan(retrying)
        scan_runner.on(
            RUFF_FIX,
            ok(RUFF_FIX),
            effect=lambda _: target.write_text(target.read_text() + "FIXED\n"),
        )
        scan_runner.on(TESTS, failed(TESTS, "1 failed"))

        result = await retrying.execute(_action("fix_errors", preserve_functionality=True))

        assert result.status == ActionStatus.FAILED
        assert result.attempts == 2
        assert scan_runner.calls.count(TESTS) == 2
        assert len(retrying.repair_history) == 1
        assert [a.severity for a in alerts.alerts] == [Severity.HIGH]

        rollback = await retrying.execute(
            _action("rollback_changes", change_id=result.detail.change_id)
        )
        assert rollback.success
        assert target.read_text() == original

    @pytest.mark.asyncio
    async def test_revert_command_registered_once(self, retrying: HealAgent, scan_runner) -> None:
        await _scan(retrying)
        scan_runner.on(TESTS, failed(TESTS, "1 failed"))

        result = await retrying.execute(_action("fix_security_issues"))

        assert result.attempts == 2
        change = retrying.ledger.get(result.detail.change_id)
        assert change is not None
        assert change.revert_commands == ["pip install requests==2.0.0"]


class TestValidationAndTests:
    @pytest.mark.asyncio
    async def test_high_issues_block_validation(self, agent) -> None:
        result = await agent.execute(_action("validate_fixes"))

        assert not result.success
        report: ValidationReport = result.detail
        assert not report.passed
        assert {i.severity for i in report.blocking} == {Severity.HIGH}

    @pytest.mark.asyncio
    async def test_clean_scan_passes_validation(self, agent, scan_runner) -> None:
        scan_runner.on(LINT, ok(LINT, "[]"))
        scan_runner.on(TYPES, ok(TYPES, "Success: no issues found"))
        scan_runner.on(AUDIT, ok(AUDIT, '{"dependencies": []}'))

        result = await agent.execute(_action("validate_fixes"))

        assert result.success
        assert result.detail.scan.issues == []

    @pytest.mark.asyncio
    async def test_run_tests(self, agent, scan_runner) -> None:
        assert (await agent.execute(_action("run_tests"))).success

        scan_runner.on(TESTS, failed(TESTS, exit_code=2))
        result = await agent.execute(_action("run_tests"))
        assert not result.success
        assert "exit 2" in result.message


class TestRefactor:
    @pytest.mark.asyncio
    async def test_refactor_smelly_file(self, agent, scan_runner, project) -> None:
        smelly = project / "pkg" / "wide.py"
        smelly.write_text("def f(a, b, c, d, e, g):\n    return a\n")
        scan_runner.on(
            "ruff check --fix --select SIM",
            ok("ruff"),
            effect=lambda _: smelly.write_text("def f(*args):\n    return args[0]\n"),
        )

        result = await agent.execute(
            _action("refactor_code", preserve_functionality=True, paths=["pkg"])
        )

        assert result.success
        repair: RepairResult = result.detail
        assert repair.category == "refactor"
        assert repair.issues_fixed == 1
        assert repair.changes == [f"step 1: simplify {smelly} (1 findings)"]

    @pytest.mark.asyncio
    async def test_nothing_to_refactor(self, agent) -> None:
        result = await agent.execute(
            _action("refactor_code", preserve_functionality=True, paths=["pkg"])
        )
        assert result.success
        assert result.message == "no refactor targets"


