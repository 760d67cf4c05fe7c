"""
Settlement executor.

Performs one recurring deposit for one plan and records it. The executor
assumes the caller holds the in-flight guard for the pool.
"""

import time
from collections.abc import Callable
from datetime import datetime
from typing import Optional

import structlog

from ..custody.base import KeyCustodyGateway
from ..errors import (
    DecryptionFailure,
    PersistenceError,
    PlanNotFoundError,
    SettlementFailure,
)
from ..logging.config import get_execution_logger, log_execution_outcome
from ..persistence.plan_store import PlanStore
from ..settlement.base import DepositReceipt, PoolSnapshot, SettlementLayer
from ..state.machine import record_execution
from ..state.models import SavingPlan
from ..utils.time import ensure_utc, is_due, utc_now
from .results import ExecutionResult, ExecutionStatus, ExecutionTrigger

logger = structlog.get_logger(__name__)
execution_logger = get_execution_logger(__name__)


class SettlementExecutor:
    """
    Runs a single plan execution end to end.

    Pipeline: reload plan → decrypt key → recurring deposit → read pool
    balance → record_execution on the reloaded plan → store.update.

    A settlement failure records nothing and leaves the plan due, so the
    next timer fire or sweep retries it.

    Timer and sweep attempts re-check the stored window after the reload
    and are skipped once another execution has already advanced it; manual
    attempts run regardless of the window.
    """

    def __init__(
        self,
        store: PlanStore,
        custody: KeyCustodyGateway,
        settlement: SettlementLayer,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.custody = custody
        self.settlement = settlement
        self.clock = clock

    def execute(
        self,
        pool_id: str,
        trigger: ExecutionTrigger,
        now: Optional[datetime] = None,
    ) -> ExecutionResult:
        """
        Execute one recurring deposit for a plan.

        Args:
            pool_id: Pool of the plan to execute
            trigger: What started this attempt
            now: Execution time, defaults to the executor's clock

        Returns:
            ExecutionResult describing the outcome

        Raises:
            PlanNotFoundError: If no plan exists for pool_id
        """
        start_time = time.time()
        executed_at = ensure_utc(now) if now is not None else self.clock()

        plan = self.store.find_by_pool_id(pool_id)
        if plan is None:
            raise PlanNotFoundError(f"No plan found for pool {pool_id}", pool_id=pool_id)

        if not plan.is_active:
            return self._finish(ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.SKIPPED,
                trigger=trigger,
                message="Plan is stopped",
                plan=plan,
            ), start_time)

        # Scheduled attempts dispatched from a stale view of the window
        if trigger != ExecutionTrigger.MANUAL and not is_due(plan.next_execution_time, executed_at):
            return self._finish(ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.SKIPPED,
                trigger=trigger,
                message="Plan is not due",
                plan=plan,
            ), start_time)

        try:
            receipt, snapshot = self._settle(plan)

        except DecryptionFailure as e:
            e.pool_id = pool_id
            return self._finish(ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.FAILED,
                trigger=trigger,
                message="Signing key could not be decrypted; manual intervention required",
                error=e,
                requires_intervention=True,
            ), start_time)

        except SettlementFailure as e:
            return self._finish(ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.FAILED,
                trigger=trigger,
                message=f"Settlement failed: {str(e)}",
                error=e,
            ), start_time, error_type=type(e).__name__)

        # Applied to the freshly stored snapshot so that owner actions made
        # while the deposit was in flight are kept
        try:
            updated = self.store.update(pool_id, lambda current: record_execution(
                current,
                tx_ref=receipt.tx_ref,
                amount=plan.periodic_amount,
                pool_amount=snapshot.amount_saved,
                now=executed_at,
            ))
            if updated is None:
                raise PersistenceError(
                    f"Plan for pool {pool_id} vanished during execution",
                    operation="update",
                    target=pool_id,
                )
        except PersistenceError as e:
            execution_logger.critical(
                "Settled deposit could not be recorded",
                pool_id=pool_id,
                tx_ref=receipt.tx_ref,
                error=str(e),
            )
            return self._finish(ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.FAILED,
                trigger=trigger,
                message=f"Deposit {receipt.tx_ref} settled but not recorded",
                tx_ref=receipt.tx_ref,
                error=e,
                requires_intervention=True,
            ), start_time)

        return self._finish(ExecutionResult(
            pool_id=pool_id,
            status=ExecutionStatus.SUCCESS,
            trigger=trigger,
            message=f"Deposited {plan.periodic_amount}",
            tx_ref=receipt.tx_ref,
            plan=updated,
        ), start_time, context={
            "total_amount": str(updated.total_amount),
            "next_execution_time": updated.next_execution_time.isoformat(),
        })

    def _settle(self, plan: SavingPlan) -> tuple[DepositReceipt, PoolSnapshot]:
        """Decrypt the signing key and run the settlement calls."""
        # The plaintext key only lives in this frame
        signing_key = self.custody.decrypt(plan.encrypted_signing_key)
        logger.debug(
            "Submitting recurring deposit",
            pool_id=plan.pool_id,
            amount=str(plan.periodic_amount),
            network=self.settlement.network,
        )
        try:
            receipt = self.settlement.apply_recurring_deposit(
                plan.pool_id,
                plan.periodic_amount,
                plan.token_ref,
                signing_key,
            )
        finally:
            # Tracebacks keep frames alive; drop the key before they escape
            del signing_key

        snapshot = self.settlement.get_pool(plan.pool_id)
        return receipt, snapshot

    def _finish(
        self,
        result: ExecutionResult,
        start_time: float,
        error_type: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> ExecutionResult:
        result.duration_ms = int((time.time() - start_time) * 1000)

        outcome_context = dict(context or {})
        outcome_context["duration_ms"] = result.duration_ms
        if error_type:
            outcome_context["error_type"] = error_type
        if result.requires_intervention:
            outcome_context["requires_intervention"] = True

        log_execution_outcome(
            execution_logger,
            pool_id=result.pool_id,
            trigger=result.trigger.value,
            status=result.status.value,
            message=result.message,
            context=outcome_context,
        )
        return result
