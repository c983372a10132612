"""HealAgent: code-issue scan and repair.

Keeps one mutable "current issue set", replaced by every ``scan_code``.
Repair actions pick the auto-fixable subset of one issue type, apply fixes
inside a change set, then run the test suite once for the whole batch.
A batch succeeds only if at least one issue was fixed and the tests pass.
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

from warden.analysis.changes import ChangeLedger
from warden.analysis.code_smells import CodeSmellDetector, plan_refactor
from warden.analysis.fixers import FixPlan, FixStrategy, ToolFixStrategy
from warden.analysis.scan_parsers import (
    parse_mypy_output,
    parse_pip_audit_json,
    parse_ruff_json,
)
from warden.config import WardenConfig
from warden.core.agent import BaseAgent, handles
from warden.core.errors import CommandError, ExecutionFailed, SafetyDenied
from warden.core.history import BoundedHistory
from warden.integrations.alerts import AlertSink, LoggingAlertSink, send_best_effort
from warden.integrations.commands import CommandRunner, SubprocessCommandRunner
from warden.learning.recorder import LearningRecorder
from warden.models import (
    AgentAction,
    AgentConfig,
    Alert,
    ChangeSet,
    CodeIssue,
    CommandResult,
    IssueType,
    Outcome,
    RepairResult,
    ScanReport,
    Severity,
    ValidationReport,
)
from warden.utils.logging import get_logger

log = get_logger(__name__)


class HealAction(StrEnum):
    SCAN_CODE = "scan_code"
    FIX_ERRORS = "fix_errors"
    FIX_WARNINGS = "fix_warnings"
    OPTIMIZE_PERFORMANCE = "optimize_performance"
    FIX_SECURITY_ISSUES = "fix_security_issues"
    REFACTOR_CODE = "refactor_code"
    RUN_TESTS = "run_tests"
    VALIDATE_FIXES = "validate_fixes"
    ROLLBACK_CHANGES = "rollback_changes"


NO_BREAKING_CHANGES_WITHOUT_TESTS = "no_breaking_changes_without_tests"
PRESERVE_FUNCTIONALITY = "preserve_functionality"
MAINTAIN_CODE_QUALITY = "maintain_code_quality"
NO_SECURITY_COMPROMISES = "no_security_compromises"


def default_heal_config() -> AgentConfig:
    return AgentConfig(
        name="heal",
        capabilities=frozenset(HealAction),
        safety_constraints=(
            NO_BREAKING_CHANGES_WITHOUT_TESTS,
            PRESERVE_FUNCTIONALITY,
            MAINTAIN_CODE_QUALITY,
            NO_SECURITY_COMPROMISES,
        ),
        constraint_scopes={
            NO_BREAKING_CHANGES_WITHOUT_TESTS: frozenset(
                {HealAction.FIX_ERRORS, HealAction.REFACTOR_CODE}
            ),
            PRESERVE_FUNCTIONALITY: frozenset({HealAction.FIX_ERRORS, HealAction.REFACTOR_CODE}),
            MAINTAIN_CODE_QUALITY: frozenset(
                {HealAction.FIX_WARNINGS, HealAction.OPTIMIZE_PERFORMANCE}
            ),
            NO_SECURITY_COMPROMISES: frozenset(
                {HealAction.FIX_SECURITY_ISSUES, HealAction.REFACTOR_CODE}
            ),
        },
        learning_rate=0.2,
        max_retries=5,
    )


_HIGH_SEVERITIES = frozenset({Severity.HIGH, Severity.CRITICAL})


class HealAgent(BaseAgent):
    """Scans a project with external checks and repairs what can be fixed."""

    actions = HealAction

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        settings: WardenConfig | None = None,
        recorder: LearningRecorder | None = None,
        runner: CommandRunner | None = None,
        fixer: FixStrategy | None = None,
        smell_detector: CodeSmellDetector | None = None,
        alerts: AlertSink | None = None,
        ledger: ChangeLedger | None = None,
    ) -> None:
        super().__init__(config or default_heal_config(), settings=settings, recorder=recorder)
        heal = self.settings.heal
        self._heal = heal
        self._root = heal.project_root.resolve()
        self._runner: CommandRunner = runner or SubprocessCommandRunner()
        self._fixer: FixStrategy = fixer or ToolFixStrategy(self._runner, project_root=self._root)
        self._smells = smell_detector or CodeSmellDetector(
            max_function_lines=heal.max_function_lines,
            max_nesting_depth=heal.max_nesting_depth,
            max_parameters=heal.max_parameters,
            max_class_methods=heal.max_class_methods,
            duplicate_threshold=heal.duplicate_threshold,
        )
        self._alerts: AlertSink = alerts or LoggingAlertSink()
        self._ledger = ledger or ChangeLedger(
            self._runner,
            project_root=self._root,
            store_dir=self.settings.changes_dir,
            maxlen=self.settings.retention.repair_history,
        )
        self._issues: list[CodeIssue] = []
        self._repair_history: BoundedHistory[RepairResult] = BoundedHistory(
            self.settings.retention.repair_history
        )

    @property
    def issues(self) -> list[CodeIssue]:
        return list(self._issues)

    @property
    def repair_history(self) -> list[RepairResult]:
        return self._repair_history.snapshot()

    @property
    def ledger(self) -> ChangeLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Safety constraints
    # ------------------------------------------------------------------

    def check_safety_constraint(self, name: str, action: AgentAction) -> bool:
        payload = action.payload
        match name:
            case "no_breaking_changes_without_tests":
                if not self._has_test_suite():
                    raise SafetyDenied(
                        f"no test suite under '{self._heal.tests_dir}', changes cannot be validated"
                    )
                return True
            case "preserve_functionality":
                return payload.get("preserve_functionality") is True
            case "maintain_code_quality":
                return not payload.get("skip_validation", False)
            case "no_security_compromises":
                protected = sorted(f for f in self._target_files(action) if self._is_protected(f))
                if protected and not payload.get("security_review", False):
                    raise SafetyDenied(
                        f"protected paths require security review: {', '.join(protected[:5])}"
                    )
                return True
            case _:
                return True

    def _has_test_suite(self) -> bool:
        tests = self._root / self._heal.tests_dir
        if not tests.is_dir():
            return False
        return any(tests.rglob("test_*.py")) or any(tests.rglob("*_test.py"))

    def _target_files(self, action: AgentAction) -> set[str]:
        files = {str(f) for f in action.payload.get("files") or []}
        if action.type == HealAction.FIX_SECURITY_ISSUES:
            files.update(
                i.file for i in self._issues if i.type == IssueType.SECURITY and i.auto_fixable
            )
        return files

    def _is_protected(self, file: str) -> bool:
        path = Path(file)
        if path.is_absolute():
            try:
                path = path.relative_to(self._root.resolve())
            except ValueError:
                return False
        parts = path.parts
        for entry in self._heal.protected_paths:
            prefix = Path(entry).parts
            if parts[: len(prefix)] == prefix:
                return True
            if len(prefix) == 1 and prefix[0] in parts:
                return True
        return False

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @handles(HealAction.SCAN_CODE)
    async def _scan_code(self, action: AgentAction) -> Outcome:
        report = await self._scan()
        return Outcome(success=True, detail=report, message=f"{len(report.issues)} issues found")

    @handles(HealAction.FIX_ERRORS)
    async def _fix_errors(self, action: AgentAction) -> Outcome:
        return await self._repair(action, IssueType.ERROR)

    @handles(HealAction.FIX_WARNINGS)
    async def _fix_warnings(self, action: AgentAction) -> Outcome:
        return await self._repair(action, IssueType.WARNING)

    @handles(HealAction.OPTIMIZE_PERFORMANCE)
    async def _optimize_performance(self, action: AgentAction) -> Outcome:
        return await self._repair(action, IssueType.PERFORMANCE)

    @handles(HealAction.FIX_SECURITY_ISSUES)
    async def _fix_security_issues(self, action: AgentAction) -> Outcome:
        return await self._repair(action, IssueType.SECURITY)

    @handles(HealAction.REFACTOR_CODE)
    async def _refactor_code(self, action: AgentAction) -> Outcome:
        paths = [self._resolve(p) for p in action.payload.get("paths") or []] or [self._root]
        smells = await asyncio.to_thread(self._smells.analyze_paths, paths)
        steps = plan_refactor(smells)
        if not steps:
            return Outcome(success=True, message="no refactor targets")

        change = self._ledger.open(
            f"refactor_code: {len(steps)} files", change_id=action.action_id
        )
        changes: list[str] = []
        for step in steps:
            self._ledger.snapshot(change, step.file_path)
            before = self._read(step.file_path)
            result = await self._runner.run(
                f"ruff check --fix --select {self._heal.refactor_rules} "
                f"{shlex.quote(step.file_path)}",
                cwd=self._root,
            )
            if not result.launched:
                raise CommandError(
                    f"refactor step {step.order} could not run: {result.error}",
                    details={"change_id": change.change_id, "file": step.file_path},
                )
            if self._read(step.file_path) != before:
                changes.append(f"step {step.order}: {step.description}")

        tests = await self._run_test_suite()
        return await self._finish_batch(
            category="refactor",
            change=change,
            fixed=len(changes),
            remaining=len(steps) - len(changes),
            changes=changes,
            tests=tests,
            new_issues=[],
        )

    @handles(HealAction.RUN_TESTS)
    async def _run_tests(self, action: AgentAction) -> Outcome:
        result = await self._run_test_suite()
        return Outcome(
            success=result.success,
            detail=result,
            message="tests passed" if result.success else f"tests failed (exit {result.exit_code})",
        )

    @handles(HealAction.VALIDATE_FIXES)
    async def _validate_fixes(self, action: AgentAction) -> Outcome:
        scan = await self._scan()
        blocking = [i for i in scan.issues if i.severity in _HIGH_SEVERITIES]
        report = ValidationReport(passed=not blocking, blocking=blocking, scan=scan)
        return Outcome(
            success=report.passed,
            detail=report,
            message="no high or critical issues" if report.passed
            else f"{len(blocking)} high/critical issues remain",
        )

    @handles(HealAction.ROLLBACK_CHANGES)
    async def _rollback_changes(self, action: AgentAction) -> Outcome:
        change_id = action.payload.get("change_id")
        if not change_id:
            return Outcome(success=False, message="payload 'change_id' is required")
        result = await self._ledger.rollback(str(change_id))
        if result is None:
            return Outcome(success=False, message=f"unknown change set '{change_id}'")
        await self.record_learning(
            "rollback",
            {"agent": self.name, "change_id": result.change_id, "complete": result.complete},
        )
        if result.already_reverted:
            return Outcome(success=True, detail=result, message="already reverted")
        return Outcome(
            success=result.complete,
            detail=result,
            message="rolled back" if result.complete else "rollback incomplete",
        )

    # ------------------------------------------------------------------
    # Scan & repair workflow
    # ------------------------------------------------------------------

    async def _scan(self) -> ScanReport:
        checks: list[tuple[str, str, Callable[[str], list[CodeIssue]]]] = [
            ("lint", self._heal.lint_command, parse_ruff_json),
            ("type_check", self._heal.type_check_command, parse_mypy_output),
            ("audit", self._heal.audit_command, parse_pip_audit_json),
        ]
        results = await asyncio.gather(
            *(self._runner.run(command, cwd=self._root) for _, command, _ in checks)
        )

        issues: list[CodeIssue] = []
        exit_codes: dict[str, int | None] = {}
        for (check, command, parser), result in zip(checks, results, strict=True):
            if not result.launched:
                raise CommandError(
                    f"{check} check could not run: {result.error}",
                    details={"check": check, "command": command},
                )
            try:
                issues.extend(parser(result.output))
            except ValueError as exc:
                raise ExecutionFailed(
                    f"{check} output unreadable: {exc}",
                    details={"check": check, "command": command},
                ) from exc
            exit_codes[check] = result.exit_code

        self._issues = issues
        report = ScanReport(issues=issues, checks=exit_codes)
        log.info("scan_complete", issues=len(issues), by_type=report.count_by("type"))
        return report

    async def _repair(self, action: AgentAction, issue_type: IssueType) -> Outcome:
        files = {str(f) for f in action.payload.get("files") or []}
        subset = [
            issue
            for issue in self._issues
            if issue.type == issue_type and issue.auto_fixable and (not files or issue.file in files)
        ]
        if not subset:
            return Outcome(success=True, message=f"nothing to fix: no auto-fixable {issue_type} issues")

        # Issues sharing a command are fixed by one run
        groups: dict[str, list[FixPlan]] = {}
        unplanned = 0
        for issue in subset:
            plan = self._fixer.generate(issue)
            if plan is None:
                unplanned += 1
                continue
            groups.setdefault(plan.command, []).append(plan)

        change = self._ledger.open(
            f"{action.type}: {len(subset)} issues", change_id=action.action_id
        )
        fixed: list[CodeIssue] = []
        changes: list[str] = []
        try:
            for plans in groups.values():
                plan = plans[0]
                for file in plan.files:
                    self._ledger.snapshot(change, file)
                if not await self._fixer.apply(plan):
                    continue
                if plan.revert_command:
                    self._ledger.add_revert_command(change, plan.revert_command)
                fixed.extend(p.issue for p in plans)
                changes.append(plan.description)
        except Exception:
            log.error("repair_batch_aborted", change_id=change.change_id, fixed=len(fixed))
            raise

        tests = await self._run_test_suite()

        # A batch that broke the tests keeps its issues so a retry re-attempts them
        before = self._issues
        if tests.success:
            fixed_keys = {id(issue) for issue in fixed}
            self._issues = [i for i in self._issues if id(i) not in fixed_keys]

        new_issues: list[CodeIssue] = []
        if action.payload.get("rescan", False):
            known = {_issue_key(i) for i in before}
            rescanned = await self._scan()
            new_issues = [i for i in rescanned.issues if _issue_key(i) not in known]

        log.info(
            "repair_batch_done",
            category=str(issue_type),
            subset=len(subset),
            fixed=len(fixed),
            unplanned=unplanned,
            tests_passed=tests.success,
        )
        return await self._finish_batch(
            category=str(issue_type),
            change=change,
            fixed=len(fixed),
            remaining=len(subset) - len(fixed),
            changes=changes,
            tests=tests,
            new_issues=new_issues,
        )

    async def _finish_batch(
        self,
        *,
        category: str,
        change: ChangeSet,
        fixed: int,
        remaining: int,
        changes: list[str],
        tests: CommandResult,
        new_issues: list[CodeIssue],
    ) -> Outcome:
        result = RepairResult(
            success=fixed > 0 and tests.success,
            issues_fixed=fixed,
            issues_remaining=remaining,
            new_issues=new_issues,
            changes=changes,
            test_results=tests,
            change_id=change.change_id,
            category=category,
        )
        # A retry of the same action reports on the same change set
        previous = self._repair_history.last()
        if previous is not None and previous.change_id == change.change_id:
            self._repair_history.replace_last(result)
            already_alerted = (
                previous.issues_fixed > 0
                and previous.test_results is not None
                and not previous.test_results.success
            )
        else:
            self._repair_history.append(result)
            already_alerted = False
        await self.record_learning(
            "repair",
            {
                "agent": self.name,
                "category": category,
                "success": result.success,
                "issues_fixed": fixed,
                "issues_remaining": remaining,
                "tests_passed": tests.success,
                "change_id": change.change_id,
            },
        )

        if fixed > 0 and not tests.success and not already_alerted:
            await send_best_effort(
                self._alerts,
                Alert(
                    source=self.name,
                    severity=Severity.HIGH,
                    title=f"{category} batch failed test validation",
                    details={"change_id": change.change_id, "issues_fixed": fixed},
                ),
            )

        if result.success:
            message = f"fixed {fixed} issues, tests passed"
        elif fixed == 0:
            message = "no fix could be applied"
        else:
            message = f"fixed {fixed} issues but tests failed; rollback with change_id {change.change_id}"
        return Outcome(success=result.success, detail=result, message=message)

    async def _run_test_suite(self) -> CommandResult:
        result = await self._runner.run(self._heal.test_command, cwd=self._root)
        log.info("test_suite_done", success=result.success, exit_code=result.exit_code)
        return result

    def _resolve(self, file: str | Path) -> Path:
        return self._ledger.resolve(str(file))

    def _read(self, file: str) -> str | None:
        path = self._resolve(file)
        try:
            return path.read_text(encoding="utf-8") if path.exists() else None
        except (OSError, UnicodeDecodeError):
            return None


def _issue_key(issue: CodeIssue) -> tuple[str, str, str]:
    return (issue.file, issue.rule, issue.message)
