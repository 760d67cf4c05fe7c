"""
Plan lifecycle state machine.

Pure transition functions over immutable SavingPlan snapshots. None of them
performs I/O; callers persist the returned snapshot through the plan store.

    create ──> ACTIVE ──stop──> STOPPED
                 ^                 │
                 └─────resume──────┘

update_periodic_amount and record_execution keep the current state.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..errors import StateTransitionError
from ..logging.config import get_state_logger, log_state_transition
from ..utils.time import ensure_utc, next_fire_time
from .ledger import append_entry, confirmed_entry
from .models import DepositType, PlanConfig, PlanState, SavingPlan

state_logger = get_state_logger(__name__)


def with_last_execution(plan: SavingPlan, executed_at: datetime) -> SavingPlan:
    """Move the execution window so next_execution_time follows executed_at."""
    executed_at = ensure_utc(executed_at)
    return plan.evolve(
        last_execution_time=executed_at,
        next_execution_time=next_fire_time(plan.interval, executed_at),
    )


def create_plan(
    config: PlanConfig,
    pool_id: str,
    tx_ref: str,
    pool_amount: Decimal,
    encrypted_signing_key: str,
    now: datetime,
    token_symbol: Optional[str] = None,
) -> SavingPlan:
    """
    Build a new ACTIVE plan around an already confirmed opening deposit.

    Args:
        config: Owner-supplied plan settings
        pool_id: Identifier of the pool opened by the settlement layer
        tx_ref: Transfer reference of the opening deposit
        pool_amount: Pool balance after the opening deposit
        encrypted_signing_key: Signing key as returned by key custody
        now: Creation time, also the first last_execution_time
        token_symbol: Display symbol of the saved token

    Returns:
        New plan snapshot with its first CONFIRMED SAVE ledger entry
    """
    now = ensure_utc(now)
    plan = SavingPlan(
        plan_id=uuid.uuid4().hex,
        pool_id=pool_id,
        owner_ref=config.owner_ref,
        token_ref=config.token_ref,
        token_symbol=token_symbol,
        initial_amount=config.initial_amount,
        periodic_amount=config.periodic_amount,
        reason=config.reason,
        lock_type=config.lock_type,
        duration=config.duration,
        interval=config.interval,
        network=config.network,
        is_active=True,
        last_execution_time=now,
        next_execution_time=next_fire_time(config.interval, now),
        encrypted_signing_key=encrypted_signing_key,
        created_at=now,
        updated_at=now,
    )
    plan = append_entry(plan, confirmed_entry(
        tx_ref=tx_ref,
        amount=config.initial_amount,
        deposit_type=DepositType.SAVE,
        pool_amount_after=pool_amount,
        timestamp=now,
    ))

    log_state_transition(
        state_logger,
        pool_id=pool_id,
        from_state="none",
        to_state=PlanState.ACTIVE.value,
        trigger="create",
        context={
            "interval": config.interval.value,
            "next_execution_time": plan.next_execution_time.isoformat(),
        }
    )
    return plan


def stop_plan(plan: SavingPlan, now: datetime) -> SavingPlan:
    """ACTIVE -> STOPPED. Timing fields and ledger are left untouched."""
    if not plan.is_active:
        raise StateTransitionError(
            f"Plan {plan.pool_id} is already stopped",
            current_state=plan.state.value,
            attempted_transition="stop",
        )

    log_state_transition(
        state_logger,
        pool_id=plan.pool_id,
        from_state=PlanState.ACTIVE.value,
        to_state=PlanState.STOPPED.value,
        trigger="stop",
    )
    return plan.evolve(is_active=False, updated_at=ensure_utc(now))


def resume_plan(plan: SavingPlan, now: datetime) -> SavingPlan:
    """
    STOPPED -> ACTIVE.

    next_execution_time is not reset: if it already elapsed while the plan
    was stopped, the plan is due immediately.
    """
    if plan.is_active:
        raise StateTransitionError(
            f"Plan {plan.pool_id} is already active",
            current_state=plan.state.value,
            attempted_transition="resume",
        )

    log_state_transition(
        state_logger,
        pool_id=plan.pool_id,
        from_state=PlanState.STOPPED.value,
        to_state=PlanState.ACTIVE.value,
        trigger="resume",
        context={"next_execution_time": plan.next_execution_time.isoformat()}
    )
    return plan.evolve(is_active=True, updated_at=ensure_utc(now))


def update_periodic_amount(plan: SavingPlan, amount: Decimal, now: datetime) -> SavingPlan:
    """Change the recurring deposit amount; no state transition."""
    state_logger.info(
        "Periodic amount updated",
        pool_id=plan.pool_id,
        old_amount=str(plan.periodic_amount),
        new_amount=str(amount),
    )
    return plan.evolve(periodic_amount=amount, updated_at=ensure_utc(now))


def record_execution(
    plan: SavingPlan,
    tx_ref: str,
    amount: Decimal,
    pool_amount: Decimal,
    now: datetime,
) -> SavingPlan:
    """
    Record one settled recurring deposit.

    Appends a CONFIRMED UPDATE entry, then advances the execution window
    from the actual execution time. Applies whatever the plan's state is,
    so an execution that was in flight when the plan was stopped is still
    recorded.
    """
    now = ensure_utc(now)
    plan = append_entry(plan, confirmed_entry(
        tx_ref=tx_ref,
        amount=amount,
        deposit_type=DepositType.UPDATE,
        pool_amount_after=pool_amount,
        timestamp=now,
    ))
    return with_last_execution(plan, now).evolve(updated_at=now)
