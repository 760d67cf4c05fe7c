"""Durable plan persistence with embedded transaction ledgers."""

import json
import sqlite3
import threading
from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import structlog

from ..errors import PersistenceError
from ..state.models import (
    LockType,
    SavingInterval,
    SavingPlan,
    TransactionEntry,
)
from ..utils.time import format_timestamp, parse_timestamp, utc_now

PLAN_COLUMNS = (
    "plan_id", "pool_id", "owner_ref", "token_ref", "token_symbol",
    "initial_amount", "periodic_amount", "reason", "lock_type", "duration",
    "interval", "network", "is_active", "last_execution_time",
    "next_execution_time", "encrypted_signing_key", "transactions",
    "total_amount", "created_at", "updated_at",
)


class PlanStore:
    """SQLite-based plan persistence layer."""

    def __init__(self, db_path: str = "periodic_savings.db", timeout_seconds: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self.logger = structlog.get_logger("plan.store")
        self._lock = threading.RLock()

        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id TEXT NOT NULL UNIQUE,
                    pool_id TEXT NOT NULL UNIQUE,
                    owner_ref TEXT NOT NULL,
                    token_ref TEXT NOT NULL,
                    token_symbol TEXT,
                    initial_amount TEXT NOT NULL,
                    periodic_amount TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    lock_type INTEGER NOT NULL,
                    duration INTEGER NOT NULL,
                    interval TEXT NOT NULL,
                    network TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_execution_time TEXT NOT NULL,
                    next_execution_time TEXT NOT NULL,
                    encrypted_signing_key TEXT NOT NULL,
                    transactions TEXT NOT NULL DEFAULT '[]',
                    total_amount TEXT NOT NULL DEFAULT '0',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_plans_owner_active ON plans(owner_ref, is_active)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_plans_due ON plans(is_active, next_execution_time)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout_seconds)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error("Database error", error=str(e))
            raise PersistenceError(
                f"Database error: {str(e)}", operation="connect", target=str(self.db_path)
            ) from e
        finally:
            if conn:
                conn.close()

    def insert(self, plan: SavingPlan) -> SavingPlan:
        """
        Store a newly created plan.

        Raises:
            PersistenceError: If a plan for the same pool already exists
        """
        values = self._plan_to_row(plan)
        with self._lock:
            try:
                with self._get_connection() as conn:
                    conn.execute(
                        f"INSERT INTO plans ({', '.join(PLAN_COLUMNS)}) "
                        f"VALUES ({', '.join('?' for _ in PLAN_COLUMNS)})",
                        values,
                    )
                    conn.commit()
            except PersistenceError as e:
                if isinstance(e.__cause__, sqlite3.IntegrityError):
                    raise PersistenceError(
                        f"Plan for pool {plan.pool_id} already exists",
                        operation="insert",
                        target=plan.pool_id,
                    ) from e.__cause__
                raise

        self.logger.info(
            "Plan stored",
            pool_id=plan.pool_id,
            owner_ref=plan.owner_ref,
            interval=plan.interval.value,
        )
        return plan

    def save(self, plan: SavingPlan) -> SavingPlan:
        """
        Persist the full snapshot of an existing plan.

        Raises:
            PersistenceError: If the plan was never inserted
        """
        values = self._plan_to_row(plan)
        assignments = ", ".join(f"{column} = ?" for column in PLAN_COLUMNS if column != "pool_id")
        params = [v for column, v in zip(PLAN_COLUMNS, values) if column != "pool_id"]

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE plans SET {assignments} WHERE pool_id = ?",
                    (*params, plan.pool_id),
                )
                conn.commit()
                if cursor.rowcount == 0:
                    raise PersistenceError(
                        f"No stored plan for pool {plan.pool_id}",
                        operation="save",
                        target=plan.pool_id,
                    )

        self.logger.debug(
            "Plan saved",
            pool_id=plan.pool_id,
            is_active=plan.is_active,
            next_execution_time=plan.next_execution_time.isoformat(),
            ledger_size=len(plan.transactions),
        )
        return plan

    def update(
        self,
        pool_id: str,
        transform: Callable[[SavingPlan], SavingPlan],
    ) -> Optional[SavingPlan]:
        """
        Read, transform and save one plan without interleaving other writers.

        Args:
            pool_id: Pool of the plan to update
            transform: Pure function producing the new snapshot

        Returns:
            The saved snapshot, or None if no plan exists for pool_id
        """
        with self._lock:
            plan = self.find_by_pool_id(pool_id)
            if plan is None:
                return None
            return self.save(transform(plan))

    def find_by_pool_id(self, pool_id: str) -> Optional[SavingPlan]:
        """Get a plan by its pool id."""
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT * FROM plans WHERE pool_id = ?
            """, (pool_id,)).fetchone()

            return self._row_to_plan(row) if row else None

    def find_due_plans(self, now: Optional[datetime] = None) -> list[SavingPlan]:
        """Active plans whose next execution time has passed, oldest first."""
        if now is None:
            now = utc_now()

        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM plans
                WHERE is_active = 1 AND next_execution_time <= ?
                ORDER BY next_execution_time
            """, (format_timestamp(now),)).fetchall()

            return [self._row_to_plan(row) for row in rows]

    def find_active(self) -> list[SavingPlan]:
        """All active plans."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM plans WHERE is_active = 1 ORDER BY next_execution_time
            """).fetchall()

            return [self._row_to_plan(row) for row in rows]

    def find_by_owner(self, owner_ref: str, active_only: bool = False) -> list[SavingPlan]:
        """All plans of an owner, newest first."""
        query = "SELECT * FROM plans WHERE owner_ref = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"

        with self._get_connection() as conn:
            rows = conn.execute(query, (owner_ref,)).fetchall()
            return [self._row_to_plan(row) for row in rows]

    def find_by_reason(self, owner_ref: str, text: str) -> list[SavingPlan]:
        """Plans of an owner whose reason contains text (case-insensitive), newest first."""
        escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM plans
                WHERE owner_ref = ? AND LOWER(reason) LIKE LOWER(?) ESCAPE '\\'
                ORDER BY created_at DESC, id DESC
            """, (owner_ref, f"%{escaped}%")).fetchall()

            return [self._row_to_plan(row) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics."""
        with self._get_connection() as conn:
            total_count = conn.execute("SELECT COUNT(*) FROM plans").fetchone()[0]
            active_count = conn.execute(
                "SELECT COUNT(*) FROM plans WHERE is_active = 1"
            ).fetchone()[0]

            interval_counts = {}
            for row in conn.execute("""
                SELECT interval, COUNT(*) as count FROM plans WHERE is_active = 1 GROUP BY interval
            """):
                interval_counts[row[0]] = row[1]

            return {
                "total_plans": total_count,
                "active_plans": active_count,
                "stopped_plans": total_count - active_count,
                "active_by_interval": interval_counts,
            }

    def _plan_to_row(self, plan: SavingPlan) -> tuple:
        """Convert a plan snapshot into column values ordered as PLAN_COLUMNS."""
        return (
            plan.plan_id,
            plan.pool_id,
            plan.owner_ref,
            plan.token_ref,
            plan.token_symbol,
            str(plan.initial_amount),
            str(plan.periodic_amount),
            plan.reason,
            int(plan.lock_type),
            plan.duration,
            plan.interval.value,
            plan.network,
            1 if plan.is_active else 0,
            format_timestamp(plan.last_execution_time),
            format_timestamp(plan.next_execution_time),
            plan.encrypted_signing_key,
            json.dumps([entry.to_dict() for entry in plan.transactions]),
            str(plan.total_amount),
            format_timestamp(plan.created_at),
            format_timestamp(plan.updated_at),
        )

    def _row_to_plan(self, row: sqlite3.Row) -> SavingPlan:
        """Convert database row to SavingPlan snapshot."""
        return SavingPlan(
            plan_id=row["plan_id"],
            pool_id=row["pool_id"],
            owner_ref=row["owner_ref"],
            token_ref=row["token_ref"],
            token_symbol=row["token_symbol"],
            initial_amount=Decimal(row["initial_amount"]),
            periodic_amount=Decimal(row["periodic_amount"]),
            reason=row["reason"],
            lock_type=LockType(row["lock_type"]),
            duration=row["duration"],
            interval=SavingInterval(row["interval"]),
            network=row["network"],
            is_active=bool(row["is_active"]),
            last_execution_time=parse_timestamp(row["last_execution_time"]),
            next_execution_time=parse_timestamp(row["next_execution_time"]),
            encrypted_signing_key=row["encrypted_signing_key"],
            transactions=tuple(
                TransactionEntry.from_dict(entry) for entry in json.loads(row["transactions"])
            ),
            total_amount=Decimal(row["total_amount"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )
