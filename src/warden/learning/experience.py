"""ExperienceMemory: bounded record of attempted actions and their outcomes.

Feeds the agent's success rate, outcome patterns (``<type>_<outcome>``
counters) and the knowledge map updated by ``learn()``.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from warden.core.history import BoundedHistory
from warden.models import AgentAction, _utc_now


class Experience(BaseModel, frozen=True):
    action_id: str
    action_type: str
    outcome: Literal["success", "failure"]
    confidence: float = 1.0
    attempts: int = 0
    timestamp: datetime = Field(default_factory=_utc_now)


class ExperienceMemory:
    """Per-agent learning memory.

    ``learning_rate`` weights how fast the per-action confidence estimate
    follows new outcomes (exponential moving average).
    """

    def __init__(self, maxlen: int = 1000, learning_rate: float = 0.1) -> None:
        self._experiences: BoundedHistory[Experience] = BoundedHistory(maxlen)
        self._patterns: Counter[str] = Counter()
        self._learning_rate = learning_rate
        self._knowledge: dict[str, Any] = {}

    def record(self, action: AgentAction, *, success: bool, attempts: int) -> Experience:
        outcome: Literal["success", "failure"] = "success" if success else "failure"
        experience = Experience(
            action_id=action.action_id,
            action_type=action.type,
            outcome=outcome,
            confidence=action.confidence,
            attempts=attempts,
        )
        self._experiences.append(experience)
        self._patterns[f"{action.type}_{outcome}"] += 1
        return experience

    @property
    def experiences(self) -> list[Experience]:
        return self._experiences.snapshot()

    @property
    def patterns(self) -> dict[str, int]:
        return dict(self._patterns)

    @property
    def knowledge(self) -> dict[str, Any]:
        return dict(self._knowledge)

    def success_rate(self) -> float:
        if not self._experiences:
            return 0.0
        successes = sum(1 for e in self._experiences if e.outcome == "success")
        return successes / len(self._experiences)

    def analyze_patterns(self) -> dict[str, dict[str, int]]:
        success: Counter[str] = Counter()
        failure: Counter[str] = Counter()
        for exp in self._experiences:
            (success if exp.outcome == "success" else failure)[exp.action_type] += 1
        return {
            "success_patterns": dict(success),
            "failure_patterns": dict(failure),
        }

    def learn(self) -> dict[str, Any]:
        """Merge the current patterns into the knowledge map and return it."""
        patterns = self.analyze_patterns()
        confidence: dict[str, float] = {}
        for exp in self._experiences:
            current = confidence.get(exp.action_type, 0.5)
            target = 1.0 if exp.outcome == "success" else 0.0
            confidence[exp.action_type] = current + self._learning_rate * (target - current)
        self._knowledge = {
            **self._knowledge,
            **patterns,
            "confidence": {k: round(v, 4) for k, v in confidence.items()},
            "last_updated": _utc_now().isoformat(),
        }
        return self.knowledge

    def __len__(self) -> int:
        return len(self._experiences)
