"""
Settlement layer module.

Boundary to the external pooled-balance ledger: opens pools, applies
recurring deposits and reports pool state.
"""
from .base import DepositReceipt, OpenPoolReceipt, PoolSnapshot, SettlementLayer
from .http_settlement import HttpSettlementLayer

__all__ = [
    "DepositReceipt",
    "HttpSettlementLayer",
    "OpenPoolReceipt",
    "PoolSnapshot",
    "SettlementLayer",
]
