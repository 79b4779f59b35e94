"""Spend tracking and budget enforcement.

Every completed model call is appended to a transaction log in SQLite.
Daily and monthly totals are never stored as counters; they are summed
from the log on each read, so they cannot drift from it.

Periods are UTC calendar days and months.

Features:
- Append-only transaction log (one INSERT per call, writes serialized)
- Daily/monthly spend with period rollover
- Hard-stop budget checks returned as data, not exceptions
- Threshold warnings that fire once per period
- Retention cleanup, export and spending statistics
"""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from modelrouter.config.loader import state_dir
from modelrouter.config.models import BudgetConfig

logger = logging.getLogger(__name__)

DEFAULT_WARNING_THRESHOLD = 80.0


class Operation(str, Enum):
    """Kind of call a transaction was recorded for."""
    CHAT = "chat"
    COMPLETION = "completion"
    TEST = "test"


@dataclass(frozen=True)
class CostTransaction:
    """A single completed call's measured cost. Never modified once written."""
    id: str
    timestamp: str  # ISO-8601, UTC
    provider: str
    model: str
    cost: float
    input_tokens: int
    output_tokens: int
    operation: Operation

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "provider": self.provider,
            "model": self.model,
            "cost": self.cost,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "operation": self.operation.value,
        }


@dataclass
class BudgetUsage:
    """Spend in the current periods, derived from the transaction log."""
    daily_spent: float
    monthly_spent: float
    daily_limit: float
    monthly_limit: float
    last_reset: str  # UTC date of the current daily period
    transaction_count: int = 0
    transactions: list[CostTransaction] = field(default_factory=list)
    currency: str = "USD"

    def to_dict(self, include_transactions: bool = False) -> dict[str, Any]:
        d: dict[str, Any] = {
            "daily_spent": round(self.daily_spent, 6),
            "monthly_spent": round(self.monthly_spent, 6),
            "daily_limit": self.daily_limit,
            "monthly_limit": self.monthly_limit,
            "last_reset": self.last_reset,
            "currency": self.currency,
            "transaction_count": self.transaction_count,
        }
        if include_transactions:
            d["transactions"] = [t.to_dict() for t in self.transactions]
        return d


@dataclass
class BudgetCheck:
    """Whether a prospective operation fits the budget."""
    allowed: bool
    current_usage: BudgetUsage
    reason: str | None = None
    estimated_cost: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "estimated_cost": self.estimated_cost,
            "usage": self.current_usage.to_dict(),
        }


@dataclass
class SpendingStats:
    """Aggregates over the whole transaction log."""
    total_spent: float = 0.0
    transaction_count: int = 0
    average_per_transaction: float = 0.0
    top_providers: list[dict[str, Any]] = field(default_factory=list)
    top_models: list[dict[str, Any]] = field(default_factory=list)
    daily_trend: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_spent": round(self.total_spent, 6),
            "transaction_count": self.transaction_count,
            "average_per_transaction": round(self.average_per_transaction, 6),
            "top_providers": self.top_providers,
            "top_models": self.top_models,
            "daily_trend": self.daily_trend,
        }


def _iso(dt: datetime) -> str:
    # Fixed width so timestamps compare correctly as strings
    return dt.isoformat(timespec="microseconds")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BudgetManager:
    """Persistent spend log backed by SQLite.

    Provides:
    - record_transaction: append one call's cost
    - get_budget_usage / check_budget / get_budget_warnings
    - cleanup_old_transactions / export_transactions / get_spending_stats
    """

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db_path = Path(db_path) if db_path else state_dir() / "budget.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or _utc_now
        self._write_lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=30)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    timestamp TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    model TEXT NOT NULL,
                    cost REAL NOT NULL DEFAULT 0.0,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    operation TEXT NOT NULL DEFAULT 'chat'
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_transactions_timestamp
                ON transactions(timestamp)
            """)
            # Period bookkeeping: last_reset, warned.daily, warned.monthly
            conn.execute("""
                CREATE TABLE IF NOT EXISTS budget_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def _get_state(self, conn: sqlite3.Connection, key: str) -> str | None:
        row = conn.execute(
            "SELECT value FROM budget_state WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    @staticmethod
    def _set_state(conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO budget_state (key, value) VALUES (?, ?)",
            (key, value),
        )

    # ─── Recording ────────────────────────────────────────────────

    def record_transaction(
        self,
        provider: str,
        model: str,
        cost: float,
        input_tokens: int,
        output_tokens: int,
        operation: Operation | str = Operation.CHAT,
    ) -> CostTransaction:
        """Append one completed call to the log.

        Raises:
            ValueError: unknown operation, negative cost or token counts.
        """
        operation = Operation(operation)
        if cost < 0:
            raise ValueError(f"cost must be non-negative, got {cost}")
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must be non-negative")

        now = self._now()
        transaction = CostTransaction(
            id=f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
            timestamp=_iso(now),
            provider=provider,
            model=model,
            cost=float(cost),
            input_tokens=int(input_tokens),
            output_tokens=int(output_tokens),
            operation=operation,
        )

        with self._write_lock:
            conn = self._connect()
            try:
                conn.execute(
                    """INSERT INTO transactions
                       (id, timestamp, provider, model, cost,
                        input_tokens, output_tokens, operation)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        transaction.id, transaction.timestamp,
                        transaction.provider, transaction.model, transaction.cost,
                        transaction.input_tokens, transaction.output_tokens,
                        transaction.operation.value,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

        logger.info(
            f"Recorded {operation.value} transaction {provider}:{model} "
            f"${transaction.cost:.6f} ({input_tokens}+{output_tokens} tokens)")
        return transaction

    def get_transactions(self, limit: int | None = None) -> list[CostTransaction]:
        """Transactions ordered by timestamp; the most recent ``limit`` if given."""
        conn = self._connect()
        try:
            if limit is None:
                rows = conn.execute(
                    """SELECT id, timestamp, provider, model, cost,
                              input_tokens, output_tokens, operation
                       FROM transactions ORDER BY timestamp, seq"""
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT * FROM (
                           SELECT id, timestamp, provider, model, cost,
                                  input_tokens, output_tokens, operation, seq
                           FROM transactions ORDER BY timestamp DESC, seq DESC LIMIT ?
                       ) ORDER BY timestamp, seq""",
                    (limit,),
                ).fetchall()
        finally:
            conn.close()

        return [
            CostTransaction(
                id=row[0], timestamp=row[1], provider=row[2], model=row[3],
                cost=row[4], input_tokens=row[5], output_tokens=row[6],
                operation=Operation(row[7]),
            )
            for row in rows
        ]

    # ─── Budget ───────────────────────────────────────────────────

    def _period_starts(self, now: datetime) -> tuple[datetime, datetime]:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = day_start.replace(day=1)
        return day_start, month_start

    def _roll_period(self, conn: sqlite3.Connection, today: str) -> str:
        """Move last_reset to ``today`` if a new day started."""
        last_reset = self._get_state(conn, "last_reset")
        if last_reset != today:
            with self._write_lock:
                self._set_state(conn, "last_reset", today)
                conn.commit()
            if last_reset is not None:
                logger.info(f"Daily budget period rolled over ({last_reset} -> {today})")
        return today

    def get_budget_usage(
        self,
        config: BudgetConfig | None = None,
        include_transactions: bool = False,
    ) -> BudgetUsage:
        """Current daily and monthly spend, summed from the log.

        The transaction list is only loaded with ``include_transactions``;
        ``transaction_count`` is always set.
        """
        now = self._now()
        day_start, month_start = self._period_starts(now)

        conn = self._connect()
        try:
            last_reset = self._roll_period(conn, day_start.date().isoformat())
            daily = conn.execute(
                "SELECT COALESCE(SUM(cost), 0.0) FROM transactions WHERE timestamp >= ?",
                (_iso(day_start),),
            ).fetchone()[0]
            monthly = conn.execute(
                "SELECT COALESCE(SUM(cost), 0.0) FROM transactions WHERE timestamp >= ?",
                (_iso(month_start),),
            ).fetchone()[0]
            count = conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]
        finally:
            conn.close()

        return BudgetUsage(
            daily_spent=daily,
            monthly_spent=monthly,
            daily_limit=(config.daily_usd or 0.0) if config else 0.0,
            monthly_limit=(config.monthly_usd or 0.0) if config else 0.0,
            last_reset=last_reset,
            transaction_count=count,
            transactions=self.get_transactions() if include_transactions else [],
        )

    def check_budget(
        self,
        estimated_cost: float | None,
        config: BudgetConfig,
    ) -> BudgetCheck:
        """Check whether spending ``estimated_cost`` more fits ``config``.

        With ``hard_stop`` an exceeded limit gives allowed=False. Without it
        the result is always allowed; ``reason`` still describes an overrun.
        An unknown estimate (None) checks the current spend only. A limit
        of 0 or None is no limit.
        """
        usage = self.get_budget_usage(config)
        extra = estimated_cost or 0.0
        overruns = []

        if config.daily_usd and usage.daily_spent + extra > config.daily_usd:
            overruns.append(
                f"Would exceed daily budget (${config.daily_usd:.2f}). "
                f"Current: ${usage.daily_spent:.4f}, Estimated: +${extra:.4f}")

        if config.monthly_usd and usage.monthly_spent + extra > config.monthly_usd:
            overruns.append(
                f"Would exceed monthly budget (${config.monthly_usd:.2f}). "
                f"Current: ${usage.monthly_spent:.4f}, Estimated: +${extra:.4f}")

        reason = "; ".join(overruns) or None
        allowed = not (overruns and config.hard_stop)
        if not allowed:
            logger.warning(f"Budget hard stop: {reason}")

        return BudgetCheck(
            allowed=allowed,
            current_usage=usage,
            reason=reason,
            estimated_cost=estimated_cost,
        )

    def get_budget_status(self, config: BudgetConfig) -> dict[str, Any]:
        """Percent of each limit used, without touching warning state."""
        usage = self.get_budget_usage(config)
        status: dict[str, Any] = {"usage": usage.to_dict()}
        for period, spent, limit in (
            ("daily", usage.daily_spent, config.daily_usd),
            ("monthly", usage.monthly_spent, config.monthly_usd),
        ):
            if limit:
                status[period] = {
                    "spent": round(spent, 6),
                    "limit": limit,
                    "remaining": round(max(0.0, limit - spent), 6),
                    "percentage": round(spent / limit * 100, 1),
                }
        return status

    def get_budget_warnings(self, config: BudgetConfig) -> list[str]:
        """Warnings for limits whose usage reached ``warning_threshold``%.

        Each limit warns once per period; later calls in the same period
        return nothing for it. A threshold of 0 falls back to 80.
        """
        now = self._now()
        usage = self.get_budget_usage(config)
        threshold = (config.warning_threshold or DEFAULT_WARNING_THRESHOLD) / 100
        periods = (
            ("daily", "Daily", usage.daily_spent, config.daily_usd, now.strftime("%Y-%m-%d")),
            ("monthly", "Monthly", usage.monthly_spent, config.monthly_usd, now.strftime("%Y-%m")),
        )

        warnings = []
        with self._write_lock:
            conn = self._connect()
            try:
                for name, label, spent, limit, period_key in periods:
                    if not limit:
                        continue
                    used = spent / limit
                    if used < threshold:
                        continue
                    if self._get_state(conn, f"warned.{name}") == period_key:
                        continue
                    self._set_state(conn, f"warned.{name}", period_key)
                    warnings.append(
                        f"{label} budget {used * 100:.1f}% used "
                        f"(${spent:.2f} of ${limit:.2f})")
                conn.commit()
            finally:
                conn.close()

        for warning in warnings:
            logger.warning(warning)
        return warnings

    # ─── Maintenance & reporting ──────────────────────────────────

    def cleanup_old_transactions(self, keep_days: int = 30) -> int:
        """Delete transactions older than ``keep_days``. Returns the count removed."""
        if keep_days < 0:
            raise ValueError("keep_days must be non-negative")
        cutoff = _iso(self._now() - timedelta(days=keep_days))

        with self._write_lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "DELETE FROM transactions WHERE timestamp < ?", (cutoff,))
                removed = cursor.rowcount
                conn.commit()
            finally:
                conn.close()

        logger.info(f"Removed {removed} transaction(s) older than {keep_days} days")
        return removed

    def export_transactions(self) -> dict[str, Any]:
        """Full dump of the log with a summary."""
        transactions = self.get_transactions()
        return {
            "transactions": [t.to_dict() for t in transactions],
            "summary": {
                "total_cost": sum(t.cost for t in transactions),
                "total_transactions": len(transactions),
                "date_range": {
                    "from": transactions[0].timestamp if transactions else "",
                    "to": transactions[-1].timestamp if transactions else "",
                },
            },
        }

    def get_spending_stats(self) -> SpendingStats:
        """Cost and count per provider, per model and per UTC day."""
        transactions = self.get_transactions()
        if not transactions:
            return SpendingStats()

        providers: dict[str, dict[str, Any]] = {}
        models: dict[str, dict[str, Any]] = {}
        days: dict[str, dict[str, Any]] = {}

        for t in transactions:
            for bucket, key, label in (
                (providers, t.provider, "provider"),
                (models, t.model, "model"),
                (days, t.timestamp[:10], "date"),
            ):
                entry = bucket.setdefault(key, {label: key, "cost": 0.0, "count": 0})
                entry["cost"] += t.cost
                entry["count"] += 1

        total = sum(t.cost for t in transactions)
        return SpendingStats(
            total_spent=total,
            transaction_count=len(transactions),
            average_per_transaction=total / len(transactions),
            top_providers=sorted(providers.values(), key=lambda e: e["cost"], reverse=True),
            top_models=sorted(models.values(), key=lambda e: e["cost"], reverse=True),
            daily_trend=sorted(days.values(), key=lambda e: e["date"]),
        )
