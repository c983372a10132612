"""Fix synthesis for scanned issues.

A ``FixStrategy`` turns one ``CodeIssue`` into a ``FixPlan`` and applies
it. The default ``ToolFixStrategy`` delegates the actual patch to the
tools that found the issue:

  - ruff findings: rule-targeted ``ruff check --fix --select <rule> <file>``
  - pip-audit findings: pinned upgrade to the first fixed version,
    with the pinned downgrade recorded as revert command

mypy findings have no automatic fix.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from warden.integrations.commands import CommandRunner
from warden.models import CodeIssue
from warden.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class FixPlan:
    issue: CodeIssue
    command: str
    files: tuple[str, ...] = ()
    revert_command: str | None = None
    description: str = ""


@runtime_checkable
class FixStrategy(Protocol):
    def generate(self, issue: CodeIssue) -> FixPlan | None: ...

    async def apply(self, plan: FixPlan) -> bool: ...


class ToolFixStrategy:
    """Static-analysis driven fixes through the originating tool."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        project_root: Path,
        timeout: float = 300.0,
        ruff_command: str = "ruff",
        pip_command: str = "pip",
    ) -> None:
        self._runner = runner
        self._root = project_root
        self._timeout = timeout
        self._ruff = ruff_command
        self._pip = pip_command

    def generate(self, issue: CodeIssue) -> FixPlan | None:
        if not issue.auto_fixable:
            return None
        tool = issue.metadata.get("tool")
        if tool == "ruff" and issue.rule and issue.file:
            return FixPlan(
                issue=issue,
                command=(
                    f"{self._ruff} check --fix --select {shlex.quote(issue.rule)} "
                    f"{shlex.quote(issue.file)}"
                ),
                files=(issue.file,),
                description=f"ruff fix {issue.rule} in {issue.file}",
            )
        if tool == "pip-audit":
            package = issue.metadata.get("package")
            target = issue.metadata.get("fix_version")
            current = issue.metadata.get("version")
            if not package or not target:
                return None
            return FixPlan(
                issue=issue,
                command=f"{self._pip} install {shlex.quote(f'{package}=={target}')}",
                revert_command=(
                    f"{self._pip} install {shlex.quote(f'{package}=={current}')}" if current else None
                ),
                description=f"upgrade {package} {current} -> {target}",
            )
        return None

    async def apply(self, plan: FixPlan) -> bool:
        result = await self._runner.run(plan.command, cwd=self._root, timeout=self._timeout)
        if not result.success:
            log.info(
                "fix_not_applied",
                command=plan.command,
                exit_code=result.exit_code,
                error=result.error[:200],
            )
        return result.success
