"""
Schedule coordinator.

Owns the per-plan timers, the periodic reconciliation sweep and the worker
pool that runs settlement executions. A single background loop wakes every
``poll_interval_seconds``, fires the timers that are due and, once per
``sweep_interval_seconds``, dispatches every plan the store reports as due.
The persisted next_execution_time stays the source of truth; timers only
make executions prompt between sweeps.
"""

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from ..config.defaults import SchedulerParams
from ..errors import ConcurrentExecutionError, PlanNotFoundError, SchedulerShutdownError
from ..execution.executor import SettlementExecutor
from ..execution.results import ExecutionResult, ExecutionStatus, ExecutionTrigger
from ..persistence.plan_store import PlanStore
from ..state.models import SavingInterval, SavingPlan
from ..utils.time import ensure_utc, is_due, next_fire_time, utc_now
from .guard import InFlightGuard

logger = structlog.get_logger(__name__)


@dataclass
class PlanTimer:
    """Recurring timer for one plan."""
    pool_id: str
    interval: SavingInterval
    fire_at: datetime


class ScheduleCoordinator:
    """
    Drives scheduled executions for all active plans.

    Guarantees at most one concurrent execution per pool. Timer and sweep
    attempts that find the pool busy are skipped; manual attempts through
    trigger() raise ConcurrentExecutionError instead. A failing execution
    never stops the loop or disturbs other timers.

    After an execution the plan's timer follows the stored window, so a
    manual run moves the next timer fire instead of adding one.
    """

    def __init__(
        self,
        store: PlanStore,
        executor: SettlementExecutor,
        params: Optional[SchedulerParams] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.executor = executor
        self.params = params or SchedulerParams()
        self.clock = clock

        self._timers: dict[str, PlanTimer] = {}
        self._timers_lock = threading.Lock()
        self._guard = InFlightGuard()
        self._workers = ThreadPoolExecutor(
            max_workers=self.params.max_workers,
            thread_name_prefix="savings-exec",
        )

        self._stop_event = threading.Event()
        self._loop_thread: Optional[threading.Thread] = None
        self._last_sweep_at: Optional[datetime] = None
        self._shut_down = False

        self._stats = {
            "timer_fires": 0,
            "sweeps": 0,
            "dispatched": 0,
            "skipped_busy": 0,
            "succeeded": 0,
            "failed": 0,
        }
        self._stats_lock = threading.Lock()

    def initialize(self, start_loop: bool = True) -> int:
        """
        Register a timer for every active plan and start the polling loop.

        Returns:
            Number of timers registered
        """
        plans = self.store.find_active()
        for plan in plans:
            self.register_plan(plan)

        self._last_sweep_at = self.clock()

        if start_loop and self._loop_thread is None:
            self._stop_event.clear()
            self._loop_thread = threading.Thread(
                target=self._run_loop,
                name="savings-scheduler",
                daemon=True,
            )
            self._loop_thread.start()

        logger.info(
            "Schedule coordinator initialized",
            timers=len(plans),
            poll_interval_seconds=self.params.poll_interval_seconds,
            sweep_interval_seconds=self.params.sweep_interval_seconds,
            loop_started=start_loop,
        )
        return len(plans)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the loop, drop every timer and drain the worker pool."""
        self._shut_down = True
        self._stop_event.set()
        if self._loop_thread is not None:
            self._loop_thread.join()
            self._loop_thread = None

        with self._timers_lock:
            self._timers.clear()

        self._workers.shutdown(wait=wait)
        logger.info("Schedule coordinator shut down")

    def register_plan(self, plan: SavingPlan) -> None:
        """Create or replace the timer of a plan; stopped plans get none."""
        if not plan.is_active:
            self.unregister_plan(plan.pool_id)
            return

        with self._timers_lock:
            self._timers[plan.pool_id] = PlanTimer(
                pool_id=plan.pool_id,
                interval=plan.interval,
                fire_at=ensure_utc(plan.next_execution_time),
            )

        logger.debug(
            "Timer registered",
            pool_id=plan.pool_id,
            fire_at=plan.next_execution_time.isoformat(),
        )

    def unregister_plan(self, pool_id: str) -> bool:
        """Remove the timer of a plan. In-flight executions are not cancelled."""
        with self._timers_lock:
            removed = self._timers.pop(pool_id, None) is not None

        if removed:
            logger.debug("Timer removed", pool_id=pool_id)
        return removed

    def has_timer(self, pool_id: str) -> bool:
        with self._timers_lock:
            return pool_id in self._timers

    def timer_fire_at(self, pool_id: str) -> Optional[datetime]:
        with self._timers_lock:
            timer = self._timers.get(pool_id)
            return timer.fire_at if timer else None

    def is_executing(self, pool_id: str) -> bool:
        return self._guard.is_held(pool_id)

    def trigger(self, pool_id: str, trigger: ExecutionTrigger) -> Future:
        """
        Dispatch one execution, refusing if the pool is already executing.

        Raises:
            ConcurrentExecutionError: If an execution for pool_id is in flight
            SchedulerShutdownError: If the coordinator was shut down
        """
        future = self._dispatch(pool_id, trigger)
        if future is None:
            raise ConcurrentExecutionError(
                f"Execution already in progress for pool {pool_id}",
                pool_id=pool_id,
            )
        return future

    def tick(self, now: Optional[datetime] = None) -> list[Future]:
        """Run one pass of the loop body: due timers, then the sweep when due."""
        now = ensure_utc(now) if now is not None else self.clock()

        futures = self.fire_due_timers(now)

        sweep_every = timedelta(seconds=self.params.sweep_interval_seconds)
        if self._last_sweep_at is None or now - self._last_sweep_at >= sweep_every:
            futures.extend(self.run_sweep(now))

        return futures

    def fire_due_timers(self, now: Optional[datetime] = None) -> list[Future]:
        """Fire every timer whose fire time has passed and re-arm it."""
        now = ensure_utc(now) if now is not None else self.clock()

        due = []
        with self._timers_lock:
            for timer in self._timers.values():
                if is_due(timer.fire_at, now):
                    timer.fire_at = next_fire_time(timer.interval, now)
                    due.append(timer.pool_id)

        futures = []
        for pool_id in due:
            self._increment("timer_fires")
            future = self._dispatch(pool_id, ExecutionTrigger.TIMER)
            if future is not None:
                futures.append(future)
        return futures

    def run_sweep(self, now: Optional[datetime] = None) -> list[Future]:
        """Dispatch every active plan whose next execution time has passed."""
        now = ensure_utc(now) if now is not None else self.clock()
        self._last_sweep_at = now
        self._increment("sweeps")

        due_plans = self.store.find_due_plans(now)
        futures = []
        for plan in due_plans:
            future = self._dispatch(plan.pool_id, ExecutionTrigger.SWEEP)
            if future is not None:
                futures.append(future)

        logger.info(
            "Sweep completed",
            due_plans=len(due_plans),
            dispatched=len(futures),
        )
        return futures

    def get_stats(self) -> dict[str, Any]:
        """Runtime counters of the coordinator."""
        with self._stats_lock:
            stats: dict[str, Any] = dict(self._stats)
        with self._timers_lock:
            stats["registered_timers"] = len(self._timers)
        stats["in_flight"] = self._guard.count()
        stats["loop_running"] = self._loop_thread is not None and self._loop_thread.is_alive()
        stats["last_sweep_at"] = self._last_sweep_at.isoformat() if self._last_sweep_at else None
        return stats

    def _dispatch(self, pool_id: str, trigger: ExecutionTrigger) -> Optional[Future]:
        """
        Acquire the guard and submit an execution; None when the pool is busy.

        Raises:
            SchedulerShutdownError: If the coordinator was shut down
        """
        if self._shut_down:
            raise SchedulerShutdownError(
                f"Scheduler is shut down, cannot execute pool {pool_id}",
                pool_id=pool_id,
            )

        if not self._guard.acquire(pool_id):
            self._increment("skipped_busy")
            logger.debug(
                "Execution already in flight, skipping",
                pool_id=pool_id,
                trigger=trigger.value,
            )
            return None

        try:
            future = self._workers.submit(self._run_execution, pool_id, trigger)
        except RuntimeError as e:
            # Worker pool closed by a concurrent shutdown
            self._guard.release(pool_id)
            raise SchedulerShutdownError(
                f"Scheduler is shut down, cannot execute pool {pool_id}",
                pool_id=pool_id,
            ) from e

        self._increment("dispatched")
        return future

    def _run_execution(self, pool_id: str, trigger: ExecutionTrigger) -> ExecutionResult:
        """Worker body; always releases the guard."""
        try:
            result = self.executor.execute(pool_id, trigger, now=self.clock())

        except PlanNotFoundError as e:
            self.unregister_plan(pool_id)
            logger.warning("Plan disappeared before execution", pool_id=pool_id)
            result = ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.FAILED,
                trigger=trigger,
                message=str(e),
                error=e,
            )

        except Exception as e:
            logger.exception(
                "Unexpected error during execution",
                pool_id=pool_id,
                trigger=trigger.value,
                error_type=type(e).__name__,
            )
            result = ExecutionResult(
                pool_id=pool_id,
                status=ExecutionStatus.FAILED,
                trigger=trigger,
                message=f"Unexpected error: {str(e)}",
                error=e,
            )

        finally:
            self._guard.release(pool_id)

        if result.plan is not None:
            self._rearm(result.plan)

        if result.status == ExecutionStatus.SUCCESS:
            self._increment("succeeded")
        elif result.status == ExecutionStatus.FAILED:
            self._increment("failed")
        return result

    def _rearm(self, plan: SavingPlan) -> None:
        """Align an existing timer with the stored window of its plan."""
        with self._timers_lock:
            timer = self._timers.get(plan.pool_id)
            if timer is None:
                return
            if plan.is_active:
                timer.fire_at = ensure_utc(plan.next_execution_time)
            else:
                del self._timers[plan.pool_id]

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.exception("Scheduler tick failed", error=str(e))
            self._stop_event.wait(self.params.poll_interval_seconds)

    def _increment(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1
