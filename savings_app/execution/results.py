"""Execution outcome types."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..state.models import SavingPlan


class ExecutionStatus(Enum):
    """Outcome of one execution attempt."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"      # Plan was stopped or no longer due when the attempt started
    REJECTED = "rejected"    # Attempt refused before dispatch (manual only)


class ExecutionTrigger(Enum):
    """What started an execution attempt."""
    TIMER = "timer"
    SWEEP = "sweep"
    MANUAL = "manual"


@dataclass
class ExecutionResult:
    """Result of one settlement execution attempt."""
    pool_id: str
    status: ExecutionStatus
    trigger: ExecutionTrigger
    message: Optional[str] = None
    tx_ref: Optional[str] = None
    duration_ms: Optional[int] = None
    error: Optional[Exception] = None
    requires_intervention: bool = False
    plan: Optional[SavingPlan] = None        # Latest stored snapshot, when known

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS
