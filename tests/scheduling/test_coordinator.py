"""Tests for the schedule coordinator and the in-flight guard."""

import threading
import time
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from savings_app.config.defaults import SchedulerParams
from savings_app.errors import (
    ConcurrentExecutionError,
    SchedulerShutdownError,
    SettlementUnavailableError,
)
from savings_app.execution.executor import SettlementExecutor
from savings_app.execution.results import ExecutionStatus, ExecutionTrigger
from savings_app.scheduling.coordinator import ScheduleCoordinator
from savings_app.scheduling.guard import InFlightGuard
from savings_app.state import machine
from savings_app.state.models import LockType, PlanConfig, SavingInterval


@pytest.fixture
def coordinator(store, custody, settlement, clock):
    executor = SettlementExecutor(store, custody, settlement, clock=clock)
    coordinator = ScheduleCoordinator(
        store,
        executor,
        params=SchedulerParams(poll_interval_seconds=1, sweep_interval_seconds=3600, max_workers=4),
        clock=clock,
    )
    yield coordinator
    settlement.release.set()
    coordinator.shutdown(wait=True)


@pytest.fixture
def add_plan(store, custody, settlement, clock):
    """Insert a daily plan for a new pool."""

    def _add(pool_id, interval=SavingInterval.DAILY, active=True):
        config = PlanConfig(
            owner_ref="owner-1",
            token_ref="0xtoken",
            initial_amount=Decimal("100"),
            periodic_amount=Decimal("5"),
            reason="Tests",
            lock_type=LockType.NONE,
            duration=86400,
            interval=interval,
        )
        settlement.pools[pool_id] = Decimal("100")
        plan = machine.create_plan(config, pool_id, f"0xopen-{pool_id}", Decimal("100"),
                                   custody.encrypt("key"), clock())
        if not active:
            plan = machine.stop_plan(plan, clock())
        return store.insert(plan)

    return _add


def wait_all(futures):
    return [f.result(timeout=10) for f in futures]


class TestInFlightGuard:
    """Test the in-flight guard."""

    def test_acquire_is_exclusive(self):
        guard = InFlightGuard()

        assert guard.acquire("p1") is True
        assert guard.acquire("p1") is False
        assert guard.acquire("p2") is True
        assert guard.count() == 2

    def test_release(self):
        guard = InFlightGuard()
        guard.acquire("p1")
        guard.release("p1")

        assert guard.is_held("p1") is False
        assert guard.acquire("p1") is True

    def test_release_unknown_is_noop(self):
        InFlightGuard().release("nothing")

    def test_concurrent_acquire_single_winner(self):
        guard = InFlightGuard()
        barrier = threading.Barrier(8)
        wins = []

        def contend():
            barrier.wait()
            wins.append(guard.acquire("p1"))

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins.count(True) == 1


class TestTimers:
    """Test timer registration and firing."""

    def test_initialize_registers_active_plans(self, coordinator, add_plan):
        add_plan("p1")
        add_plan("p2")
        add_plan("p3", active=False)

        assert coordinator.initialize(start_loop=False) == 2
        assert coordinator.has_timer("p1")
        assert coordinator.has_timer("p2")
        assert not coordinator.has_timer("p3")

    def test_timer_starts_at_next_execution_time(self, coordinator, add_plan, clock):
        plan = add_plan("p1")
        coordinator.register_plan(plan)

        assert coordinator.timer_fire_at("p1") == plan.next_execution_time

    def test_register_stopped_plan_removes_timer(self, coordinator, add_plan, clock):
        plan = add_plan("p1")
        coordinator.register_plan(plan)
        coordinator.register_plan(machine.stop_plan(plan, clock()))

        assert not coordinator.has_timer("p1")

    def test_unregister(self, coordinator, add_plan):
        coordinator.register_plan(add_plan("p1"))

        assert coordinator.unregister_plan("p1") is True
        assert coordinator.unregister_plan("p1") is False

    def test_timer_not_due_does_nothing(self, coordinator, add_plan, clock, settlement):
        coordinator.register_plan(add_plan("p1"))

        assert coordinator.fire_due_timers(clock() + timedelta(hours=23)) == []
        assert settlement.deposits == []

    def test_due_timer_executes_and_rearms(self, coordinator, add_plan, clock, store):
        coordinator.register_plan(add_plan("p1"))
        fired_at = clock.advance(days=1)

        results = wait_all(coordinator.fire_due_timers(fired_at))

        assert [r.status for r in results] == [ExecutionStatus.SUCCESS]
        assert results[0].trigger == ExecutionTrigger.TIMER
        assert coordinator.timer_fire_at("p1") == fired_at + timedelta(days=1)
        assert store.find_by_pool_id("p1").next_execution_time == fired_at + timedelta(days=1)

    def test_failed_timer_fire_still_rearms(self, coordinator, add_plan, clock, settlement, store):
        coordinator.register_plan(add_plan("p1"))
        settlement.fail_with = SettlementUnavailableError("down")
        fired_at = clock.advance(days=1)

        results = wait_all(coordinator.fire_due_timers(fired_at))

        assert results[0].status == ExecutionStatus.FAILED
        assert coordinator.timer_fire_at("p1") == fired_at + timedelta(days=1)
        # Persisted window is untouched, so the sweep picks the plan up
        assert [p.pool_id for p in store.find_due_plans(fired_at)] == ["p1"]

    def test_manual_run_moves_timer_to_stored_window(self, coordinator, add_plan, clock, settlement, store):
        coordinator.register_plan(add_plan("p1"))
        clock.advance(hours=12)

        result = coordinator.trigger("p1", ExecutionTrigger.MANUAL).result(timeout=10)

        assert result.status == ExecutionStatus.SUCCESS
        assert coordinator.timer_fire_at("p1") == store.find_by_pool_id("p1").next_execution_time
        assert coordinator.fire_due_timers(clock() + timedelta(hours=12)) == []
        assert len(settlement.deposits) == 1


class TestSweep:
    """Test the reconciliation sweep."""

    def test_sweep_dispatches_due_plans_only(self, coordinator, add_plan, clock, settlement):
        add_plan("due")
        add_plan("stopped", active=False)
        clock.advance(hours=12)
        add_plan("later")
        now = clock.advance(hours=12)

        results = wait_all(coordinator.run_sweep(now))

        assert [r.pool_id for r in results] == ["due"]
        assert results[0].trigger == ExecutionTrigger.SWEEP
        assert [d["pool_id"] for d in settlement.deposits] == ["due"]

    def test_sweep_recovers_missed_windows_once(self, coordinator, add_plan, clock, settlement, store):
        """A plan that missed several windows gets one execution per sweep."""
        add_plan("p1")
        now = clock.advance(days=5)

        wait_all(coordinator.run_sweep(now))

        assert len(settlement.deposits) == 1
        assert store.find_by_pool_id("p1").next_execution_time == now + timedelta(days=1)

    def test_tick_runs_sweep_on_its_own_period(self, coordinator, add_plan, clock):
        coordinator.initialize(start_loop=False)

        with patch.object(coordinator, "run_sweep", return_value=[]) as mock_sweep:
            coordinator.tick(clock() + timedelta(minutes=30))
            assert mock_sweep.call_count == 0

            coordinator.tick(clock() + timedelta(hours=1))
            assert mock_sweep.call_count == 1

    def test_loop_survives_tick_error(self, coordinator):
        """Errors raised by a pass are logged and do not kill the loop thread."""
        calls = []

        def failing_tick():
            calls.append(1)
            coordinator._stop_event.set()
            raise RuntimeError("database locked")

        with patch.object(coordinator, "tick", side_effect=failing_tick):
            coordinator._run_loop()

        assert calls == [1]


class TestConcurrency:
    """Test the at-most-one-execution-per-pool guarantee."""

    def test_single_execution_per_pool(self, coordinator, add_plan, clock, settlement, store):
        coordinator.register_plan(add_plan("p1"))
        settlement.blocking = True
        now = clock.advance(days=1)

        first = coordinator.trigger("p1", ExecutionTrigger.MANUAL)
        assert settlement.entered.wait(timeout=5)

        with pytest.raises(ConcurrentExecutionError):
            coordinator.trigger("p1", ExecutionTrigger.MANUAL)
        assert coordinator.run_sweep(now) == []
        assert coordinator.fire_due_timers(now) == []
        assert coordinator.is_executing("p1")

        settlement.release.set()
        assert first.result(timeout=10).status == ExecutionStatus.SUCCESS

        assert len(settlement.deposits) == 1
        assert len(store.find_by_pool_id("p1").transactions) == 2
        assert not coordinator.is_executing("p1")
        assert coordinator.get_stats()["skipped_busy"] == 2

    def test_slow_pool_does_not_block_others(self, coordinator, add_plan, clock, settlement):
        add_plan("slow")
        add_plan("fast")
        original = settlement.apply_recurring_deposit
        gate = threading.Event()

        def slow_for_one(pool_id, *args):
            if pool_id == "slow":
                gate.wait(timeout=10)
            return original(pool_id, *args)

        with patch.object(settlement, "apply_recurring_deposit", side_effect=slow_for_one):
            slow = coordinator.trigger("slow", ExecutionTrigger.MANUAL)
            fast = coordinator.trigger("fast", ExecutionTrigger.MANUAL)

            assert fast.result(timeout=10).status == ExecutionStatus.SUCCESS
            assert not slow.done()
            gate.set()
            assert slow.result(timeout=10).status == ExecutionStatus.SUCCESS

    def test_unexpected_error_is_isolated(self, coordinator, add_plan, clock):
        add_plan("broken")
        add_plan("healthy")
        now = clock.advance(days=1)
        original = coordinator.executor.execute

        def explode_for_one(pool_id, trigger, now=None):
            if pool_id == "broken":
                raise KeyError("corrupt row")
            return original(pool_id, trigger, now=now)

        with patch.object(coordinator.executor, "execute", side_effect=explode_for_one):
            results = {r.pool_id: r for r in wait_all(coordinator.run_sweep(now))}

        assert results["broken"].status == ExecutionStatus.FAILED
        assert results["healthy"].status == ExecutionStatus.SUCCESS
        assert not coordinator.is_executing("broken")

    def test_stale_sweep_entry_after_timer_run_is_skipped(self, coordinator, add_plan, clock, settlement, store):
        """A sweep that read the plan before a timer run completed does not deposit again."""
        coordinator.register_plan(add_plan("p1"))
        settlement.blocking = True
        now = clock.advance(days=1)

        timer_futures = coordinator.fire_due_timers(now)
        assert settlement.entered.wait(timeout=5)
        stale = store.find_due_plans(now)
        settlement.release.set()
        assert [r.status for r in wait_all(timer_futures)] == [ExecutionStatus.SUCCESS]

        with patch.object(store, "find_due_plans", return_value=stale):
            results = wait_all(coordinator.run_sweep(now))

        assert [p.pool_id for p in stale] == ["p1"]
        assert [r.status for r in results] == [ExecutionStatus.SKIPPED]
        assert results[0].message == "Plan is not due"
        assert len(settlement.deposits) == 1
        assert len(store.find_by_pool_id("p1").transactions) == 2


class TestLifecycle:
    """Test initialize and shutdown."""

    def test_background_loop_fires_due_timers(self, coordinator, add_plan, clock, settlement):
        add_plan("p1")
        clock.advance(days=1)

        coordinator.initialize(start_loop=True)
        deadline = time.time() + 10
        while not settlement.deposits and time.time() < deadline:
            time.sleep(0.05)

        assert [d["pool_id"] for d in settlement.deposits] == ["p1"]
        assert coordinator.get_stats()["loop_running"] is True

    def test_shutdown_drops_timers_and_stops_loop(self, coordinator, add_plan):
        add_plan("p1")
        coordinator.initialize(start_loop=True)

        coordinator.shutdown(wait=True)

        stats = coordinator.get_stats()
        assert stats["registered_timers"] == 0
        assert stats["loop_running"] is False

    def test_independent_coordinators(self, store, custody, settlement, clock, add_plan):
        add_plan("p1")
        executor = SettlementExecutor(store, custody, settlement, clock=clock)
        first = ScheduleCoordinator(store, executor, clock=clock)
        second = ScheduleCoordinator(store, executor, clock=clock)
        try:
            first.initialize(start_loop=False)

            assert first.has_timer("p1")
            assert not second.has_timer("p1")
        finally:
            first.shutdown()
            second.shutdown()

    def test_trigger_after_shutdown_raises(self, coordinator, add_plan, settlement):
        add_plan("p1")
        coordinator.shutdown(wait=True)

        with pytest.raises(SchedulerShutdownError) as exc_info:
            coordinator.trigger("p1", ExecutionTrigger.MANUAL)

        assert exc_info.value.pool_id == "p1"
        assert not coordinator.is_executing("p1")
        assert settlement.deposits == []
