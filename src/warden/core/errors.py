"""Warden · Unified Error Hierarchy.

All custom exceptions inherit from WardenError, which carries an error_code
and optional details dict for programmatic handling.

Only programmer errors escape ``BaseAgent.execute``: a misconfigured agent
raises at construction time. Expected failures (undeclared capability,
safety denial, failed attempts) are reported as typed ``ActionResult``
values and carry the same error codes defined here.

Usage::

    from warden.core.errors import AgentMisconfigured

    raise AgentMisconfigured("capability without handler", details={"action": "scan_code"})
"""

from __future__ import annotations

# Error codes shared with ActionResult.error_code
CAPABILITY_NOT_DECLARED = "CAPABILITY_NOT_DECLARED"
SAFETY_DENIED = "SAFETY_DENIED"
EXECUTION_FAILED = "EXECUTION_FAILED"
AGENT_INACTIVE = "AGENT_INACTIVE"
CANCELLED = "CANCELLED"


class WardenError(Exception):
    """Base exception for all Warden errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "WARDEN_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigError(WardenError):
    """Configuration-related errors (loading, validation, missing keys)."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class AgentMisconfigured(ConfigError):
    """An agent's declaration is inconsistent with its implementation."""

    def __init__(
        self,
        message: str,
        error_code: str = "AGENT_MISCONFIGURED",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class CapabilityError(WardenError):
    """Action type is not among the agent's declared capabilities."""

    def __init__(
        self,
        message: str,
        error_code: str = CAPABILITY_NOT_DECLARED,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class SafetyDenied(WardenError):
    """A safety constraint vetoed the action before execution."""

    def __init__(
        self,
        message: str,
        error_code: str = SAFETY_DENIED,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class ExecutionFailed(WardenError):
    """A single attempt of an action failed. Retryable."""

    def __init__(
        self,
        message: str,
        error_code: str = EXECUTION_FAILED,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class CommandError(ExecutionFailed):
    """An external command could not be launched or timed out."""

    def __init__(
        self,
        message: str,
        error_code: str = "COMMAND_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class CollaboratorError(WardenError):
    """A best-effort collaborator (store, sink) failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "COLLABORATOR_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
