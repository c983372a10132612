"""Warden core module."""

from warden.core.errors import (  # noqa: F401
    AgentMisconfigured,
    CapabilityError,
    CollaboratorError,
    CommandError,
    ConfigError,
    ExecutionFailed,
    SafetyDenied,
    WardenError,
)
from warden.core.history import BoundedHistory  # noqa: F401
