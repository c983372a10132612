"""SafetyConstraintEngine: deterministic pre-execution gate.

Purely rule-based. Evaluates an agent's declared constraints, in
declaration order, against one proposed action before any work runs.

Guarantees:
  - Only constraints scoped to the action type are evaluated
  - The first denying constraint wins
  - A predicate that raises denies (fail closed)
  - Evaluation has no side effects besides logging
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from warden.core.errors import AgentMisconfigured, SafetyDenied
from warden.models import AgentAction, AgentConfig
from warden.utils.logging import get_logger

log = get_logger(__name__)

ConstraintPredicate = Callable[[str, AgentAction], bool]


@dataclass(frozen=True)
class SafetyDecision:
    """Outcome of the gate for one action."""

    allowed: bool
    constraint: str | None = None
    reason: str = ""
    evaluated: tuple[str, ...] = field(default_factory=tuple)


class SafetyConstraintEngine:
    """Per-agent predicate table.

    ``predicate(name, action)`` is the agent's ``check_safety_constraint``.
    It returns False to deny, or raises ``SafetyDenied`` to deny with a
    specific reason.
    """

    def __init__(
        self,
        config: AgentConfig,
        predicate: ConstraintPredicate,
        known_actions: Iterable[str] | None = None,
    ) -> None:
        self._config = config
        self._predicate = predicate
        known = frozenset(known_actions) if known_actions is not None else config.capabilities
        self._validate_scopes(known)

    def _validate_scopes(self, known_actions: frozenset[str]) -> None:
        declared = set(self._config.safety_constraints)
        for constraint, scope in self._config.constraint_scopes.items():
            if constraint not in declared:
                raise AgentMisconfigured(
                    f"scope for undeclared constraint '{constraint}'",
                    details={"agent": self._config.name, "constraint": constraint},
                )
            unknown = set(scope) - known_actions
            if unknown:
                raise AgentMisconfigured(
                    f"constraint '{constraint}' scoped to unknown action types",
                    details={
                        "agent": self._config.name,
                        "constraint": constraint,
                        "unknown": sorted(unknown),
                    },
                )

    def applicable(self, action_type: str) -> list[str]:
        """Constraints that apply to ``action_type``, in declaration order."""
        scopes = self._config.constraint_scopes
        return [
            name
            for name in self._config.safety_constraints
            if name not in scopes or action_type in scopes[name]
        ]

    def evaluate(self, action: AgentAction) -> SafetyDecision:
        evaluated: list[str] = []
        for name in self.applicable(action.type):
            evaluated.append(name)
            try:
                allowed = bool(self._predicate(name, action))
                reason = "" if allowed else f"constraint '{name}' denied action '{action.type}'"
            except SafetyDenied as exc:
                allowed = False
                reason = str(exc)
            except Exception as exc:
                log.error(
                    "constraint_check_error",
                    agent=self._config.name,
                    constraint=name,
                    action=action.type,
                    error=str(exc),
                )
                allowed = False
                reason = f"constraint '{name}' could not be evaluated: {exc}"

            if not allowed:
                log.warning(
                    "safety_denied",
                    agent=self._config.name,
                    constraint=name,
                    action=action.type,
                    reason=reason[:200],
                )
                return SafetyDecision(
                    allowed=False,
                    constraint=name,
                    reason=reason,
                    evaluated=tuple(evaluated),
                )

        log.debug(
            "safety_allowed",
            agent=self._config.name,
            action=action.type,
            evaluated=len(evaluated),
        )
        return SafetyDecision(allowed=True, evaluated=tuple(evaluated))
