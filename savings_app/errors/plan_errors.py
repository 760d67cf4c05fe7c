"""
Plan-level error classifications.

Errors raised to callers of the engine's public operations. None of them
mutates plan state.
"""

from typing import Any, Optional

from .recovery import UnrecoverableError


class PlanError(Exception):
    """Base class for errors surfaced to the engine's callers."""

    def __init__(self, message: str, pool_id: Optional[str] = None,
                 context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.pool_id = pool_id
        self.context = context or {}
        self.recoverable = False


class PlanNotFoundError(PlanError):
    """No plan exists for the referenced pool id."""
    pass


class PlanInactiveError(PlanError):
    """Operation needs an ACTIVE plan but the plan is STOPPED."""
    pass


class ConcurrentExecutionError(PlanError):
    """An execution for the same pool is already in flight."""
    pass


class SchedulerShutdownError(PlanError):
    """Execution requested after the scheduler was shut down."""
    pass


class ConfigurationError(UnrecoverableError):
    """Plan or engine configuration is invalid (e.g. unknown interval)."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.errors = errors or []
