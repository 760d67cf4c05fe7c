"""
Data models for periodic savings plans.

This module defines immutable data structures for a plan's configuration,
its runtime scheduling state and its embedded transaction ledger. Every
change produces a new snapshot; persistence happens explicitly at the call
site through the plan store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..utils.time import ensure_utc


class SavingInterval(str, Enum):
    """Recognized recurring deposit cadences."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class LockType(int, Enum):
    """Withdrawal locking applied by the savings pool."""
    NONE = 0
    SOFT = 1
    HARD = 2


class PlanState(str, Enum):
    """Lifecycle states managed by this subsystem."""
    ACTIVE = "active"
    STOPPED = "stopped"


class TransactionStatus(str, Enum):
    """Ledger entry status."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class DepositType(str, Enum):
    """Kind of pool movement recorded by a ledger entry."""
    SAVE = "SAVE"          # Opening deposit
    UPDATE = "UPDATE"      # Recurring deposit
    WITHDRAW = "WITHDRAW"  # Pool withdrawal (recorded by external flows)


@dataclass(frozen=True)
class TransactionEntry:
    """One append-only ledger record of a settlement attempt."""

    tx_ref: str
    amount: Decimal
    timestamp: datetime
    status: TransactionStatus
    deposit_type: DepositType
    pool_amount_after: Decimal
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize for storage."""
        return {
            "tx_ref": self.tx_ref,
            "amount": str(self.amount),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "deposit_type": self.deposit_type.value,
            "pool_amount_after": str(self.pool_amount_after),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionEntry":
        """Rebuild an entry from its stored form."""
        return cls(
            tx_ref=data["tx_ref"],
            amount=Decimal(data["amount"]),
            timestamp=ensure_utc(datetime.fromisoformat(data["timestamp"])),
            status=TransactionStatus(data["status"]),
            deposit_type=DepositType(data["deposit_type"]),
            pool_amount_after=Decimal(data["pool_amount_after"]),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class PlanConfig:
    """Owner-supplied settings for a new periodic savings plan."""

    owner_ref: str
    token_ref: str
    initial_amount: Decimal
    periodic_amount: Decimal
    reason: str
    lock_type: LockType
    duration: int                                    # Lock duration in seconds
    interval: SavingInterval
    network: str = "LISK"


@dataclass(frozen=True)
class SavingPlan:
    """Snapshot of one recurring deposit schedule bound to one pool."""

    # Identity
    plan_id: str
    pool_id: str

    # Configuration
    owner_ref: str
    token_ref: str
    initial_amount: Decimal
    periodic_amount: Decimal
    reason: str
    lock_type: LockType
    duration: int
    interval: SavingInterval
    network: str

    # Runtime scheduling state
    is_active: bool
    last_execution_time: datetime
    next_execution_time: datetime
    encrypted_signing_key: str

    # Timestamps
    created_at: datetime
    updated_at: datetime

    token_symbol: Optional[str] = None

    # Embedded ledger and its derived total
    transactions: tuple[TransactionEntry, ...] = field(default_factory=tuple)
    total_amount: Decimal = Decimal("0")

    @property
    def state(self) -> PlanState:
        """Lifecycle state derived from the active flag."""
        return PlanState.ACTIVE if self.is_active else PlanState.STOPPED

    def evolve(self, **changes) -> "SavingPlan":
        """Create a new snapshot with the given fields replaced."""
        return replace(self, **changes)

    def __repr__(self) -> str:
        # encrypted_signing_key is left out of reprs that may end up in logs
        return (
            f"SavingPlan(pool_id={self.pool_id!r}, owner_ref={self.owner_ref!r}, "
            f"interval={self.interval.value}, state={self.state.value}, "
            f"next_execution_time={self.next_execution_time.isoformat()})"
        )
