"""Base classes for settlement layer clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class OpenPoolReceipt:
    """Result of opening a savings pool with its first deposit."""
    tx_ref: str
    pool_id: str


@dataclass(frozen=True)
class DepositReceipt:
    """Result of one confirmed recurring deposit."""
    tx_ref: str


@dataclass(frozen=True)
class PoolSnapshot:
    """Pool state as reported by the settlement layer."""
    pool_id: str
    amount_saved: Decimal
    is_active: bool = True
    token_ref: Optional[str] = None
    reason: Optional[str] = None
    lock_type: Optional[int] = None
    duration: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)


class SettlementLayer(ABC):
    """
    Executes deposit transfers against the external savings pool contract.

    Implementations raise SettlementFailure (or a subclass) for every
    rejected, reverted or timed out call. Calls return only once the
    transfer is confirmed.
    """

    def __init__(self, name: str, network: str):
        self.name = name
        self.network = network

    @abstractmethod
    def open_pool(
        self,
        token_ref: str,
        amount: Decimal,
        reason: str,
        lock_type: int,
        duration: int,
        signing_key: str,
    ) -> OpenPoolReceipt:
        """Open a pool funded with its initial deposit."""
        pass

    @abstractmethod
    def apply_recurring_deposit(
        self,
        pool_id: str,
        amount: Decimal,
        token_ref: str,
        signing_key: str,
    ) -> DepositReceipt:
        """Add one recurring deposit to an existing pool."""
        pass

    @abstractmethod
    def get_pool(self, pool_id: str) -> PoolSnapshot:
        """Read the current state of a pool."""
        pass

    @abstractmethod
    def get_token_symbol(self, token_ref: str) -> str:
        """Resolve the display symbol of a token."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the settlement layer is reachable."""
        pass
