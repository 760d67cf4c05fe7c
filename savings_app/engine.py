"""
Periodic savings engine coordinator.

Wires key custody, the settlement layer, the plan store and the schedule
coordinator together and exposes the owner-facing operations.
"""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from .config.defaults import DefaultConfig, get_default_config
from .config.validation import ConfigValidator
from .custody.aes_custody import AesGcmKeyCustody
from .custody.base import KeyCustodyGateway
from .errors import (
    ConcurrentExecutionError,
    PlanInactiveError,
    PlanNotFoundError,
    SchedulerShutdownError,
)
from .execution.executor import SettlementExecutor
from .execution.results import ExecutionResult, ExecutionStatus, ExecutionTrigger
from .persistence.plan_store import PlanStore
from .scheduling.coordinator import ScheduleCoordinator
from .settlement.base import SettlementLayer
from .settlement.http_settlement import HttpSettlementLayer
from .state import machine
from .state.models import PlanConfig, SavingPlan
from .utils.time import utc_now

logger = structlog.get_logger(__name__)


class PeriodicSavingEngine:
    """
    Main coordinator for periodic savings plans.

    Plan lifecycle:
    create → (timer / sweep / manual executions) → stop ⇄ resume
    """

    def __init__(
        self,
        store: PlanStore,
        custody: KeyCustodyGateway,
        settlement: SettlementLayer,
        settings: Optional[DefaultConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the periodic savings engine."""
        self.logger = logger
        self.settings = settings or get_default_config()
        self.clock = clock

        self.store = store
        self.custody = custody
        self.settlement = settlement

        self.executor = SettlementExecutor(store, custody, settlement, clock=clock)
        self.coordinator = ScheduleCoordinator(
            store,
            self.executor,
            params=self.settings.scheduler,
            clock=clock,
        )

        self.logger.info(
            "Periodic saving engine initialized",
            settlement=settlement.name,
            network=settlement.network,
        )

    @classmethod
    def from_config(
        cls,
        settings: DefaultConfig,
        custody: Optional[KeyCustodyGateway] = None,
        settlement: Optional[SettlementLayer] = None,
    ) -> "PeriodicSavingEngine":
        """Build an engine with the production store, custody and relayer client."""
        if custody is None:
            custody = AesGcmKeyCustody.from_env(settings.custody.secret_env_var)
        if settlement is None:
            settlement = HttpSettlementLayer(settings.settlement)
        store = PlanStore(settings.store.db_path, timeout_seconds=settings.store.timeout_seconds)
        return cls(store, custody, settlement, settings=settings)

    def initialize(self, start_loop: bool = True) -> None:
        """Restore timers for every active plan and start scheduling."""
        registered = self.coordinator.initialize(start_loop=start_loop)
        self.logger.info("Scheduling restored", active_plans=registered)

    def shutdown(self, wait: bool = True) -> None:
        """Stop scheduling and wait for in-flight executions."""
        self.coordinator.shutdown(wait=wait)
        self.logger.info("Periodic saving engine shut down")

    def create_plan(
        self,
        config: Union[PlanConfig, dict[str, Any]],
        signing_key: str,
    ) -> SavingPlan:
        """
        Open a pool with its initial deposit and schedule recurring deposits.

        Args:
            config: Plan settings, as a PlanConfig or a raw mapping
            signing_key: Owner's signing key; stored only in encrypted form

        Returns:
            The persisted ACTIVE plan

        Raises:
            ConfigurationError: If the plan settings are invalid
            SettlementFailure: If the pool could not be opened
        """
        if not isinstance(config, PlanConfig):
            config = ConfigValidator.parse_plan_config(config)
        else:
            ConfigValidator.parse_plan_config(vars(config))

        token_symbol = self.settlement.get_token_symbol(config.token_ref)

        receipt = self.settlement.open_pool(
            config.token_ref,
            config.initial_amount,
            config.reason,
            int(config.lock_type),
            config.duration,
            signing_key,
        )
        snapshot = self.settlement.get_pool(receipt.pool_id)
        encrypted_key = self.custody.encrypt(signing_key)

        plan = machine.create_plan(
            config,
            pool_id=receipt.pool_id,
            tx_ref=receipt.tx_ref,
            pool_amount=snapshot.amount_saved,
            encrypted_signing_key=encrypted_key,
            now=self.clock(),
            token_symbol=token_symbol,
        )
        self.store.insert(plan)
        self.coordinator.register_plan(plan)

        self.logger.info(
            "Periodic saving plan created",
            pool_id=plan.pool_id,
            owner_ref=plan.owner_ref,
            token_symbol=token_symbol,
            interval=plan.interval.value,
            periodic_amount=str(plan.periodic_amount),
            next_execution_time=plan.next_execution_time.isoformat(),
        )
        return plan

    def stop_plan(self, pool_id: str) -> SavingPlan:
        """Stop a plan; an execution already in flight still completes."""
        now = self.clock()
        stopped = self._update_plan(pool_id, lambda plan: machine.stop_plan(plan, now))
        self.coordinator.unregister_plan(pool_id)
        return stopped

    def resume_plan(self, pool_id: str) -> SavingPlan:
        """Resume a stopped plan; an elapsed window makes it due immediately."""
        now = self.clock()
        resumed = self._update_plan(pool_id, lambda plan: machine.resume_plan(plan, now))
        self.coordinator.register_plan(resumed)
        return resumed

    def update_amount(self, pool_id: str, amount: Union[Decimal, str, int]) -> SavingPlan:
        """Change the recurring deposit amount used by future executions."""
        value = ConfigValidator.validate_amount(amount, field="periodic_amount")
        now = self.clock()
        return self._update_plan(
            pool_id, lambda plan: machine.update_periodic_amount(plan, value, now)
        )

    def manual_execute(self, pool_id: str) -> ExecutionResult:
        """
        Execute one deposit now, outside the schedule.

        Returns:
            ExecutionResult; REJECTED when the plan is stopped, an
            execution is already in flight or the engine is shut down

        Raises:
            PlanNotFoundError: If no plan exists for pool_id
        """
        plan = self._require_plan(pool_id)

        if not plan.is_active:
            self.logger.info("Manual execution rejected", pool_id=pool_id, reason="inactive")
            return ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.REJECTED,
                trigger=ExecutionTrigger.MANUAL,
                message="Cannot execute inactive saving",
                error=PlanInactiveError(f"Plan for pool {pool_id} is stopped", pool_id=pool_id),
            )

        try:
            future = self.coordinator.trigger(pool_id, ExecutionTrigger.MANUAL)
        except ConcurrentExecutionError as e:
            self.logger.info("Manual execution rejected", pool_id=pool_id, reason="in_flight")
            return ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.REJECTED,
                trigger=ExecutionTrigger.MANUAL,
                message="Execution already in progress",
                error=e,
            )
        except SchedulerShutdownError as e:
            self.logger.warning("Manual execution rejected", pool_id=pool_id, reason="shut_down")
            return ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.REJECTED,
                trigger=ExecutionTrigger.MANUAL,
                message="Engine is shut down",
                error=e,
            )

        return future.result()

    def get_plan(self, pool_id: str) -> SavingPlan:
        """Get one plan by its pool id."""
        return self._require_plan(pool_id)

    def list_owner_plans(self, owner_ref: str) -> list[SavingPlan]:
        """All plans of an owner, newest first."""
        return self.store.find_by_owner(owner_ref)

    def total_saved_by_owner(self, owner_ref: str) -> Decimal:
        """Sum of confirmed deposits over the owner's active plans."""
        return sum(
            (plan.total_amount for plan in self.store.find_by_owner(owner_ref, active_only=True)),
            Decimal("0"),
        )

    def find_plans_by_reason(self, owner_ref: str, text: str) -> list[SavingPlan]:
        """Owner's plans whose reason contains text, ignoring case."""
        return self.store.find_by_reason(owner_ref, text)

    def get_runtime_stats(self) -> dict[str, Any]:
        """Get runtime statistics."""
        return {
            "scheduler": self.coordinator.get_stats(),
            "store": self.store.get_stats(),
            "settlement": {
                "name": self.settlement.name,
                "network": self.settlement.network,
            },
        }

    def _require_plan(self, pool_id: str) -> SavingPlan:
        plan = self.store.find_by_pool_id(pool_id)
        if plan is None:
            raise PlanNotFoundError(f"No plan found for pool {pool_id}", pool_id=pool_id)
        return plan

    def _update_plan(
        self,
        pool_id: str,
        transform: Callable[[SavingPlan], SavingPlan],
    ) -> SavingPlan:
        updated = self.store.update(pool_id, transform)
        if updated is None:
            raise PlanNotFoundError(f"No plan found for pool {pool_id}", pool_id=pool_id)
        return updated
