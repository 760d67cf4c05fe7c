"""
Transaction ledger embedded in each savings plan.

The ledger is append-only and chronological. Its total is always the full
recomputed sum of CONFIRMED entries, never an incremental add, so the
figure stays correct whatever the append order or any external edit of
stored entries.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .models import (
    DepositType,
    SavingPlan,
    TransactionEntry,
    TransactionStatus,
)


def compute_total_amount(entries: Iterable[TransactionEntry]) -> Decimal:
    """Sum the amounts of all CONFIRMED entries."""
    return sum(
        (entry.amount for entry in entries if entry.status == TransactionStatus.CONFIRMED),
        Decimal("0"),
    )


def append_entry(plan: SavingPlan, entry: TransactionEntry) -> SavingPlan:
    """
    Append a ledger entry to a plan snapshot.

    Args:
        plan: Current plan snapshot
        entry: Entry to append at the end of the ledger

    Returns:
        New plan snapshot; total_amount is recomputed when the entry is
        CONFIRMED
    """
    transactions = plan.transactions + (entry,)
    if entry.status == TransactionStatus.CONFIRMED:
        return plan.evolve(
            transactions=transactions,
            total_amount=compute_total_amount(transactions),
        )
    return plan.evolve(transactions=transactions)


def confirmed_entry(
    tx_ref: str,
    amount: Decimal,
    deposit_type: DepositType,
    pool_amount_after: Decimal,
    timestamp: datetime,
) -> TransactionEntry:
    """Build a CONFIRMED ledger entry for a settled transfer."""
    return TransactionEntry(
        tx_ref=tx_ref,
        amount=amount,
        timestamp=timestamp,
        status=TransactionStatus.CONFIRMED,
        deposit_type=deposit_type,
        pool_amount_after=pool_amount_after,
    )


def confirmed_count(plan: SavingPlan) -> int:
    """Number of CONFIRMED entries in the plan's ledger."""
    return sum(1 for entry in plan.transactions if entry.status == TransactionStatus.CONFIRMED)


def last_confirmed_entry(plan: SavingPlan) -> Optional[TransactionEntry]:
    """Most recent CONFIRMED entry, or None for an empty ledger."""
    for entry in reversed(plan.transactions):
        if entry.status == TransactionStatus.CONFIRMED:
            return entry
    return None
