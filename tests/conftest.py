"""Pytest configuration and shared fixtures."""

import tempfile
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from savings_app.config.defaults import SchedulerParams, get_default_config
from savings_app.custody.aes_custody import AesGcmKeyCustody
from savings_app.engine import PeriodicSavingEngine
from savings_app.errors import SettlementFailure
from savings_app.persistence.plan_store import PlanStore
from savings_app.settlement.base import (
    DepositReceipt,
    OpenPoolReceipt,
    PoolSnapshot,
    SettlementLayer,
)
from savings_app.state.models import LockType, SavingInterval, SavingPlan

START_TIME = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeSettlementLayer(SettlementLayer):
    """
    In-memory settlement layer.

    Set ``fail_with`` to make recurring deposits raise. Set ``blocking`` to
    hold recurring deposits until ``release`` is set; ``entered`` is set
    once a deposit is waiting.
    """

    def __init__(self) -> None:
        super().__init__("fake", "LISK")
        self.pools: Dict[str, Decimal] = {}
        self.deposits: List[Dict[str, Any]] = []
        self.opened: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.blocking = False
        self.entered = threading.Event()
        self.release = threading.Event()
        self._counter = 0
        self._lock = threading.Lock()

    def _next_ref(self, prefix: str) -> str:
        with self._lock:
            self._counter += 1
            return f"{prefix}-{self._counter}"

    def open_pool(self, token_ref, amount, reason, lock_type, duration, signing_key):
        pool_id = self._next_ref("pool")
        self.pools[pool_id] = Decimal(amount)
        self.opened.append({
            "pool_id": pool_id,
            "token_ref": token_ref,
            "amount": amount,
            "reason": reason,
            "lock_type": lock_type,
            "duration": duration,
            "signing_key": signing_key,
        })
        return OpenPoolReceipt(tx_ref=self._next_ref("0xopen"), pool_id=pool_id)

    def apply_recurring_deposit(self, pool_id, amount, token_ref, signing_key):
        if self.blocking:
            self.entered.set()
            self.release.wait(timeout=10)
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.pools[pool_id] = self.pools.get(pool_id, Decimal("0")) + Decimal(amount)
            self.deposits.append({
                "pool_id": pool_id,
                "amount": amount,
                "token_ref": token_ref,
                "signing_key": signing_key,
            })
        return DepositReceipt(tx_ref=self._next_ref("0xdep"))

    def get_pool(self, pool_id):
        if pool_id not in self.pools:
            raise SettlementFailure(f"Unknown pool {pool_id}", pool_id=pool_id, operation="get_pool")
        return PoolSnapshot(pool_id=pool_id, amount_saved=self.pools[pool_id])

    def get_token_symbol(self, token_ref):
        return "USDC"

    def health_check(self):
        return True


@pytest.fixture
def clock() -> FixedClock:
    """Clock fixed at the test start time."""
    return FixedClock()


@pytest.fixture
def settlement() -> FakeSettlementLayer:
    """In-memory settlement layer."""
    fake = FakeSettlementLayer()
    yield fake
    fake.release.set()


@pytest.fixture
def custody() -> AesGcmKeyCustody:
    """Key custody with a test secret."""
    return AesGcmKeyCustody("test-custody-secret")


@pytest.fixture
def store() -> PlanStore:
    """Plan store backed by a temporary SQLite file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield PlanStore(str(Path(temp_dir) / "plans.db"))


@pytest.fixture
def engine(store, custody, settlement, clock) -> PeriodicSavingEngine:
    """Engine with the polling loop disabled; tests drive it with tick()."""
    settings = get_default_config()
    settings = type(settings)(
        scheduler=SchedulerParams(poll_interval_seconds=1, sweep_interval_seconds=3600, max_workers=4),
        store=settings.store,
        custody=settings.custody,
        settlement=settings.settlement,
        logging=settings.logging,
    )
    engine = PeriodicSavingEngine(store, custody, settlement, settings=settings, clock=clock)
    engine.initialize(start_loop=False)
    yield engine
    settlement.release.set()
    engine.shutdown(wait=True)


@pytest.fixture
def plan_settings() -> Dict[str, Any]:
    """Raw settings of a weekly plan."""
    return {
        "owner_ref": "owner-1",
        "token_ref": "0xtoken",
        "initial_amount": "100",
        "periodic_amount": "10",
        "reason": "Emergency fund",
        "lock_type": 0,
        "duration": 2592000,
        "interval": "WEEKLY",
    }


@pytest.fixture
def plan_factory():
    """Build SavingPlan snapshots with overridable fields."""
    def make_plan(**overrides) -> SavingPlan:
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        fields = dict(
            plan_id="plan-1",
            pool_id="pool-1",
            owner_ref="owner-1",
            token_ref="0xtoken",
            initial_amount=Decimal("100"),
            periodic_amount=Decimal("10"),
            reason="Holiday",
            lock_type=LockType.NONE,
            duration=86400,
            interval=SavingInterval.DAILY,
            network="LISK",
            is_active=True,
            last_execution_time=now,
            next_execution_time=datetime(2024, 1, 2, tzinfo=timezone.utc),
            encrypted_signing_key="aa:bb",
            created_at=now,
            updated_at=now,
        )
        fields.update(overrides)
        return SavingPlan(**fields)

    return make_plan
