"""Tests for ExperienceMemory: patterns, success rate, learning."""

from __future__ import annotations

import pytest

from warden.learning.experience import ExperienceMemory
from warden.models import AgentAction


def _fill(memory: ExperienceMemory, outcomes: list[tuple[str, bool]]) -> None:
    for action_type, success in outcomes:
        memory.record(AgentAction(type=action_type), success=success, attempts=1)


def test_patterns_and_success_rate() -> None:
    memory = ExperienceMemory(maxlen=10)
    _fill(memory, [("scan", True), ("scan", False), ("fix", True), ("scan", True)])

    assert memory.patterns == {"scan_success": 2, "scan_failure": 1, "fix_success": 1}
    assert memory.success_rate() == pytest.approx(0.75)


def test_empty_memory() -> None:
    memory = ExperienceMemory()
    assert memory.success_rate() == 0.0
    assert memory.analyze_patterns() == {"success_patterns": {}, "failure_patterns": {}}


def test_bounded() -> None:
    memory = ExperienceMemory(maxlen=2)
    _fill(memory, [("a", True), ("b", True), ("c", False)])
    assert [e.action_type for e in memory.experiences] == ["b", "c"]


def test_learn_is_stable_across_calls() -> None:
    memory = ExperienceMemory(learning_rate=0.5)
    _fill(memory, [("scan", True), ("scan", True)])

    first = memory.learn()
    second = memory.learn()

    # 0.5 -> 0.75 -> 0.875
    assert first["confidence"]["scan"] == pytest.approx(0.875)
    assert second["confidence"] == first["confidence"]
    assert second["success_patterns"] == {"scan": 2}
    assert "last_updated" in memory.knowledge
