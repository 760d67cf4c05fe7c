"""
System failure error classifications.

These exceptions represent failures of the engine's own infrastructure
(state machine, storage, key custody) that are not fixed by simply waiting
for the next schedule fire.
"""

from typing import Any, Dict, Optional


class SystemFailureError(Exception):
    """Base class for unrecoverable system failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class StateTransitionError(SystemFailureError):
    """Transition not allowed from the plan's current state."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


class PersistenceError(SystemFailureError):
    """Database or file system persistence failures."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class DecryptionFailure(SystemFailureError):
    """Stored signing key could not be decrypted; the plan needs manual repair."""

    def __init__(self, message: str, pool_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.pool_id = pool_id
        self.requires_intervention = True
