#!/usr/bin/env python3
"""
Basic Usage Example - Periodic Savings Engine

This script demonstrates the basic usage of the periodic savings engine
with a simulated settlement layer. It shows how to:
- Initialize the engine
- Create a weekly savings plan
- Drive the scheduler over simulated weeks
- Execute, stop and resume a plan manually

Run: python examples/basic_usage.py
"""

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from savings_app.custody.aes_custody import AesGcmKeyCustody
from savings_app.engine import PeriodicSavingEngine
from savings_app.errors import InsufficientBalanceError, SettlementFailure
from savings_app.logging.config import configure_logging
from savings_app.persistence.plan_store import PlanStore
from savings_app.settlement.base import (
    DepositReceipt,
    OpenPoolReceipt,
    PoolSnapshot,
    SettlementLayer,
)


class SimulatedSettlement(SettlementLayer):
    """In-memory pools with a wallet balance that can run dry."""

    def __init__(self, wallet_balance: Decimal):
        super().__init__("simulated", "LISK")
        self.wallet_balance = wallet_balance
        self.pools = {}
        self.tx_count = 0

    def _tx(self) -> str:
        self.tx_count += 1
        return f"0x{self.tx_count:064x}"

    def _withdraw(self, amount: Decimal) -> None:
        if amount > self.wallet_balance:
            raise InsufficientBalanceError(
                "Wallet balance too low",
                required=str(amount),
                available=str(self.wallet_balance),
            )
        self.wallet_balance -= amount

    def open_pool(self, token_ref, amount, reason, lock_type, duration, signing_key):
        self._withdraw(amount)
        pool_id = str(len(self.pools) + 1)
        self.pools[pool_id] = amount
        return OpenPoolReceipt(tx_ref=self._tx(), pool_id=pool_id)

    def apply_recurring_deposit(self, pool_id, amount, token_ref, signing_key):
        self._withdraw(amount)
        self.pools[pool_id] += amount
        return DepositReceipt(tx_ref=self._tx())

    def get_pool(self, pool_id):
        if pool_id not in self.pools:
            raise SettlementFailure(f"Unknown pool {pool_id}", pool_id=pool_id)
        return PoolSnapshot(pool_id=pool_id, amount_saved=self.pools[pool_id])

    def get_token_symbol(self, token_ref):
        return "USDC"

    def health_check(self):
        return True


class SimulatedClock:
    """Clock advanced by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def print_plan(engine: PeriodicSavingEngine, pool_id: str) -> None:
    plan = engine.get_plan(pool_id)
    print(f"📊 Pool {plan.pool_id} ({plan.reason})")
    print(f"  State: {plan.state.value}")
    print(f"  Total saved: {plan.total_amount} {plan.token_symbol}")
    print(f"  Last execution: {plan.last_execution_time.isoformat()}")
    print(f"  Next execution: {plan.next_execution_time.isoformat()}")
    print(f"  Ledger entries: {len(plan.transactions)}")
    print()


def main():
    """Main demonstration function."""
    configure_logging(level="WARNING")

    print("🚀 Periodic Savings Engine - Basic Usage Demo")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as temp_dir:
        clock = SimulatedClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        settlement = SimulatedSettlement(wallet_balance=Decimal("150"))
        engine = PeriodicSavingEngine(
            PlanStore(str(Path(temp_dir) / "demo.db")),
            AesGcmKeyCustody("demo-custody-secret"),
            settlement,
            clock=clock,
        )

        print("1. Initializing the engine...")
        engine.initialize(start_loop=False)
        print()

        print("2. Creating a weekly plan...")
        plan = engine.create_plan({
            "owner_ref": "alice",
            "token_ref": "0xtoken",
            "initial_amount": "100",
            "periodic_amount": "20",
            "reason": "Summer holiday",
            "lock_type": 1,
            "duration": 90 * 86400,
            "interval": "WEEKLY",
        }, signing_key="0xdemo-signing-key")
        print_plan(engine, plan.pool_id)

        print("3. Simulating four weeks of scheduler ticks...")
        for _ in range(28):
            clock.now += timedelta(days=1)
            for future in engine.coordinator.tick():
                result = future.result()
                print(f"   {clock.now.date()} {result.trigger.value}: {result.status.value} - {result.message}")
        print(f"   Wallet balance left: {settlement.wallet_balance}")
        print()
        print_plan(engine, plan.pool_id)

        print("4. Stopping the plan and trying a manual execution...")
        engine.stop_plan(plan.pool_id)
        result = engine.manual_execute(plan.pool_id)
        print(f"   Manual execution: {result.status.value} - {result.message}")
        print()

        print("5. Topping up, resuming and executing manually...")
        settlement.wallet_balance += Decimal("50")
        engine.resume_plan(plan.pool_id)
        engine.update_amount(plan.pool_id, "25")
        result = engine.manual_execute(plan.pool_id)
        print(f"   Manual execution: {result.status.value} - {result.message}")
        print()
        print_plan(engine, plan.pool_id)

        print("6. Owner summary:")
        print(f"   Total saved by alice: {engine.total_saved_by_owner('alice')}")
        stats = engine.get_runtime_stats()
        print(f"   Scheduler: {stats['scheduler']['succeeded']} succeeded, {stats['scheduler']['failed']} failed")
        print(f"   Store: {stats['store']['active_plans']} active of {stats['store']['total_plans']}")

        engine.shutdown()

    print("\n✅ Demo completed")


if __name__ == "__main__":
    main()
