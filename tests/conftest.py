"""
Warden · Shared test fixtures.

Every test uses a temporary directory instead of ~/.warden/ and zero
retry backoff, so tests are isolated and fast.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from warden.config import RetryConfig, WardenConfig
from warden.integrations.alerts import CollectingAlertSink
from warden.learning.recorder import InMemoryLearningStore
from warden.models import CommandResult


class ScriptedRunner:
    """Command runner double: answers by command prefix, records every call.

    ``script`` maps a command prefix to a CommandResult or to a list of
    results consumed in order (the last one repeats).
    """

    def __init__(self, script: dict[str, CommandResult | list[CommandResult]] | None = None):
        self.script: dict[str, CommandResult | list[CommandResult]] = dict(script or {})
        self.calls: list[str] = []
        self.side_effects: dict[str, object] = {}

    def on(self, prefix: str, *results: CommandResult, effect=None) -> ScriptedRunner:
        self.script[prefix] = list(results) if len(results) > 1 else results[0]
        if effect is not None:
            self.side_effects[prefix] = effect
        return self

    async def run(self, command: str, *, cwd: Path | None = None, timeout: float | None = None):
        self.calls.append(command)
        for prefix in sorted(self.script, key=len, reverse=True):
            if command.startswith(prefix):
                effect = self.side_effects.get(prefix)
                if effect is not None:
                    effect(command)
                answer = self.script[prefix]
                if isinstance(answer, list):
                    return answer.pop(0) if len(answer) > 1 else answer[0]
                return answer
        return ok(command)


def ok(command: str, output: str = "") -> CommandResult:
    return CommandResult(command=command, success=True, output=output, exit_code=0)


def failed(command: str, output: str = "", exit_code: int | None = 1) -> CommandResult:
    return CommandResult(command=command, success=False, output=output, exit_code=exit_code)


@pytest.fixture()
def warden_home(tmp_path: Path) -> Path:
    """Temporary Warden home directory."""
    return tmp_path / ".warden"


@pytest.fixture()
def settings(warden_home: Path) -> WardenConfig:
    """WardenConfig with a temporary home and no retry backoff."""
    return WardenConfig(
        warden_home=warden_home,
        retry=RetryConfig(base_delay_seconds=0.0, max_delay_seconds=0.0),
    )


@pytest.fixture()
def recorder() -> InMemoryLearningStore:
    return InMemoryLearningStore()


@pytest.fixture()
def alerts() -> CollectingAlertSink:
    return CollectingAlertSink()


@pytest.fixture()
def runner() -> ScriptedRunner:
    return ScriptedRunner()
