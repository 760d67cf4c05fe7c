"""
Error classification system for the periodic savings engine.

This module provides a structured exception hierarchy for the failures
encountered while scheduling and settling recurring deposits.
"""

from .plan_errors import (
    PlanError,
    PlanNotFoundError,
    PlanInactiveError,
    ConcurrentExecutionError,
    SchedulerShutdownError,
    ConfigurationError,
)
from .recovery import (
    RecoverableError,
    UnrecoverableError,
)
from .settlement import (
    SettlementFailure,
    InsufficientBalanceError,
    SettlementRejectedError,
    SettlementUnavailableError,
)
from .system_failures import (
    SystemFailureError,
    StateTransitionError,
    PersistenceError,
    DecryptionFailure,
)

__all__ = [
    # Caller-facing errors
    "PlanError",
    "PlanNotFoundError",
    "PlanInactiveError",
    "ConcurrentExecutionError",
    "SchedulerShutdownError",
    "ConfigurationError",
    # Settlement failures
    "SettlementFailure",
    "InsufficientBalanceError",
    "SettlementRejectedError",
    "SettlementUnavailableError",
    # System failures
    "SystemFailureError",
    "StateTransitionError",
    "PersistenceError",
    "DecryptionFailure",
    # Recovery categories
    "RecoverableError",
    "UnrecoverableError",
]
