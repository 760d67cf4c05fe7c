"""
Settlement layer error classifications.

Every failure reported by the settlement layer is recoverable from the
engine's point of view: nothing is recorded, the plan stays due, and the
next timer or sweep fire retries it.
"""

from typing import Optional

from .recovery import RecoverableError


class SettlementFailure(RecoverableError):
    """Settlement call rejected, reverted or timed out."""

    def __init__(self, message: str, pool_id: Optional[str] = None,
                 operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.pool_id = pool_id
        self.operation = operation


class InsufficientBalanceError(SettlementFailure):
    """Custodial wallet cannot cover the deposit amount."""

    def __init__(self, message: str, required: Optional[str] = None,
                 available: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available


class SettlementRejectedError(SettlementFailure):
    """Settlement layer or contract rejected the request (client-side error)."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class SettlementUnavailableError(SettlementFailure):
    """Network, RPC or server-side failure reaching the settlement layer."""
    pass
