"""
Settlement execution module.

Runs one recurring deposit for one plan: decrypt, settle, record, persist.
"""
from .executor import SettlementExecutor
from .results import ExecutionResult, ExecutionStatus, ExecutionTrigger

__all__ = [
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionTrigger",
    "SettlementExecutor",
]
