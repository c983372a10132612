"""BaseAgent: the gated execution contract shared by every agent.

Flow of one ``execute(action)`` call:

  1. Reject if the agent is shut down or ``action.type`` is not a declared
     capability. Nothing runs.
  2. Evaluate every safety constraint scoped to the action type. On denial
     return a denied result. Nothing runs, nothing is recorded.
  3. Run the action's handler under the RetryController.
  4. Record the experience and a learning record, return a typed result.

Concrete agents declare a closed ``actions`` enum and one handler per
member via ``@handles``. A class that leaves a member without a handler
fails at class-definition time.

Usage::

    class Actions(StrEnum):
        SCAN = "scan"

    class MyAgent(BaseAgent):
        actions = Actions

        @handles(Actions.SCAN)
        async def _scan(self, action: AgentAction) -> Outcome:
            ...

        def check_safety_constraint(self, name: str, action: AgentAction) -> bool:
            return True
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel

from warden.config import WardenConfig
from warden.core.errors import (
    AGENT_INACTIVE,
    CANCELLED,
    CAPABILITY_NOT_DECLARED,
    EXECUTION_FAILED,
    SAFETY_DENIED,
    AgentMisconfigured,
)
from warden.core.retry import RetryController, RetryReport
from warden.core.safety import SafetyConstraintEngine, SafetyDecision
from warden.learning.experience import ExperienceMemory
from warden.learning.recorder import InMemoryLearningStore, LearningRecorder
from warden.models import ActionResult, ActionStatus, AgentAction, AgentConfig, Outcome
from warden.utils.logging import bind_context, get_logger, unbind_context

log = get_logger(__name__)

_HANDLES_ATTR = "__warden_handles__"

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def handles(action_type: str) -> Callable[[F], F]:
    """Register the decorated coroutine method as handler for ``action_type``."""

    def decorator(fn: F) -> F:
        setattr(fn, _HANDLES_ATTR, str(action_type))
        return fn

    return decorator


class BaseAgent(ABC):
    """Abstract agent with capability gating, safety gate and retries."""

    actions: ClassVar[type[StrEnum] | None] = None
    _handlers: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.actions is None:
            return

        handlers: dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for attr_name, attr in vars(klass).items():
                tag = getattr(attr, _HANDLES_ATTR, None)
                if tag is not None:
                    handlers[tag] = attr_name

        declared = {member.value for member in cls.actions}
        missing = declared - set(handlers)
        if missing:
            raise TypeError(
                f"{cls.__name__} has no handler for action types: {sorted(missing)}"
            )
        unknown = set(handlers) - declared
        if unknown:
            raise TypeError(
                f"{cls.__name__} registers handlers for undeclared action types: {sorted(unknown)}"
            )
        cls._handlers = handlers

    def __init__(
        self,
        config: AgentConfig,
        *,
        settings: WardenConfig | None = None,
        recorder: LearningRecorder | None = None,
    ) -> None:
        if self.actions is None:
            raise AgentMisconfigured(f"{type(self).__name__} declares no actions")

        self._settings = settings or WardenConfig()
        config = self._apply_override(config)

        undeclared = set(config.capabilities) - set(self._handlers)
        if undeclared:
            raise AgentMisconfigured(
                "capabilities without handler",
                details={"agent": config.name, "capabilities": sorted(undeclared)},
            )

        self._config = config
        self._recorder: LearningRecorder = recorder or InMemoryLearningStore()
        self._safety = SafetyConstraintEngine(
            config,
            self.check_safety_constraint,
            known_actions=self._handlers,
        )
        retry = self._settings.retry
        self._retry = RetryController(
            max_retries=config.max_retries,
            base_delay=retry.base_delay_seconds,
            max_delay=retry.max_delay_seconds,
        )
        self._memory = ExperienceMemory(
            maxlen=self._settings.retention.experiences,
            learning_rate=config.learning_rate,
        )
        self._lock = asyncio.Lock()
        self._active = True
        self._current_task: str | None = None

    def _apply_override(self, config: AgentConfig) -> AgentConfig:
        override = self._settings.override_for(config.name)
        update = {
            key: value
            for key, value in (
                ("max_retries", override.max_retries),
                ("learning_rate", override.learning_rate),
            )
            if value is not None
        }
        return config.model_copy(update=update) if update else config

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def settings(self) -> WardenConfig:
        return self._settings

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def memory(self) -> ExperienceMemory:
        return self._memory

    @property
    def safety(self) -> SafetyConstraintEngine:
        return self._safety

    # ------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------

    @abstractmethod
    def check_safety_constraint(self, name: str, action: AgentAction) -> bool:
        """Predicate body for constraint ``name``. False (or SafetyDenied) denies."""

    async def perform_action(self, action: AgentAction) -> Outcome:
        """Dispatch one attempt to the registered handler."""
        handler = getattr(self, self._handlers[action.type])
        result = await handler(action)
        return _to_outcome(result)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        action: AgentAction,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ActionResult:
        """Gate, run and record one action. Never raises for expected failures."""
        bind_context(agent=self.name, action=action.type, action_id=action.action_id)
        try:
            if not self._active:
                log.warning("agent_inactive")
                return self._result(
                    action,
                    ActionStatus.REJECTED,
                    message=f"agent '{self.name}' is shut down",
                    error_code=AGENT_INACTIVE,
                )

            if action.type not in self._config.capabilities:
                log.warning("capability_not_declared")
                return self._result(
                    action,
                    ActionStatus.REJECTED,
                    message=f"action type '{action.type}' is not a capability of '{self.name}'",
                    error_code=CAPABILITY_NOT_DECLARED,
                )

            async with self._lock:
                decision = self._safety.evaluate(action)
                if not decision.allowed:
                    return self._denied(action, decision)
                return await self._run(action, cancel_event)
        finally:
            unbind_context("agent", "action", "action_id")

    async def _run(
        self,
        action: AgentAction,
        cancel_event: asyncio.Event | None,
    ) -> ActionResult:
        self._current_task = action.type
        log.info("action_started", requested_by=action.requested_by)
        try:
            report = await self._retry.run(
                lambda: self.perform_action(action),
                timeout=self._settings.retry.timeout_for(action.type),
                cancel_event=cancel_event,
                label=action.type,
            )
        finally:
            self._current_task = None

        result = self._from_report(action, report)
        if report.attempts > 0:
            self._memory.record(action, success=result.success, attempts=report.attempts)
            await self.record_learning(
                "action",
                {
                    "agent": self.name,
                    "action_type": action.type,
                    "action_id": action.action_id,
                    "requested_by": action.requested_by,
                    "status": result.status.value,
                    "attempts": report.attempts,
                    "duration_ms": result.duration_ms,
                    "success_rate": round(self._memory.success_rate(), 4),
                },
            )

        if result.success:
            log.info("action_succeeded", attempts=result.attempts, duration_ms=result.duration_ms)
        else:
            log.warning(
                "action_not_succeeded",
                status=result.status.value,
                attempts=result.attempts,
                error=result.message[:200],
            )
        return result

    def _from_report(self, action: AgentAction, report: RetryReport) -> ActionResult:
        outcome = report.outcome
        detail = outcome.detail if outcome is not None else None
        if report.success and outcome is not None:
            return self._result(
                action,
                ActionStatus.SUCCEEDED,
                detail=detail,
                message=outcome.message,
                attempts=report.attempts,
                duration_ms=report.duration_ms,
            )
        if report.cancelled:
            return self._result(
                action,
                ActionStatus.CANCELLED,
                detail=detail,
                message=report.error,
                error_code=CANCELLED,
                attempts=report.attempts,
                duration_ms=report.duration_ms,
            )
        return self._result(
            action,
            ActionStatus.FAILED,
            detail=detail,
            message=report.error,
            error_code=EXECUTION_FAILED,
            attempts=report.attempts,
            duration_ms=report.duration_ms,
        )

    def _denied(self, action: AgentAction, decision: SafetyDecision) -> ActionResult:
        return self._result(
            action,
            ActionStatus.DENIED,
            message=decision.reason,
            error_code=SAFETY_DENIED,
            denied_by=decision.constraint,
        )

    def _result(self, action: AgentAction, status: ActionStatus, **fields: Any) -> ActionResult:
        return ActionResult(
            action_id=action.action_id,
            action_type=action.type,
            agent=self.name,
            status=status,
            **fields,
        )

    # ------------------------------------------------------------------
    # Learning & lifecycle
    # ------------------------------------------------------------------

    async def record_learning(self, category: str, payload: dict[str, Any]) -> None:
        """Best-effort write to the learning recorder. Never raises."""
        try:
            await self._recorder.record(category, payload)
        except Exception as exc:
            log.warning("learning_record_failed", category=category, error=str(exc))

    async def learn(self) -> dict[str, Any]:
        """Fold the experience memory into the knowledge map and record it."""
        knowledge = self._memory.learn()
        log.info("agent_learned", agent=self.name, experiences=len(self._memory))
        await self.record_learning(
            "learning",
            {
                "agent": self.name,
                "patterns": {
                    "success_patterns": knowledge["success_patterns"],
                    "failure_patterns": knowledge["failure_patterns"],
                },
                "success_rate": round(self._memory.success_rate(), 4),
                "experience_count": len(self._memory),
            },
        )
        return knowledge

    async def initialize(self) -> None:
        self._active = True
        log.info("agent_initialized", agent=self.name)
        await self.record_learning("lifecycle", {"agent": self.name, "event": "initialized"})

    async def shutdown(self) -> None:
        self._active = False
        log.info("agent_shutdown", agent=self.name)
        await self.record_learning("lifecycle", {"agent": self.name, "event": "shutdown"})

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "active": self._active,
            "current_task": self._current_task,
            "success_rate": round(self._memory.success_rate(), 4),
            "experience_count": len(self._memory),
            "patterns": self._memory.patterns,
            "capabilities": sorted(self._config.capabilities),
        }


def _to_outcome(result: Any) -> Outcome:
    if isinstance(result, Outcome):
        return result
    if isinstance(result, bool):
        return Outcome(success=result)
    if isinstance(result, BaseModel) and isinstance(getattr(result, "success", None), bool):
        return Outcome(success=result.success, detail=result)
    raise TypeError(f"handler returned unsupported type {type(result).__name__}")
