"""Repository for the ``user_subscriptions`` ledger."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from dailydev.domain.errors import (
    ForeignKeyViolationError,
    LedgerUnavailableError,
    RecordMissingError,
)
from dailydev.domain.models.subscription import (
    TRANSACTION_FIELDS,
    SnapshotUpdate,
    SubscriptionSnapshot,
)
from dailydev.domain.timestamps import (
    format_timestamp,
    format_write_marker,
    parse_timestamp,
    utc_now,
)
from dailydev.infrastructure.persistence.sqlite import connect

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELDS = frozenset({"trial_end", "current_period_end"})


class SubscriptionRepository:
    """Repository for the one-row-per-user subscription ledger in SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_table()

    def _initialize_table(self) -> None:
        """Create the user_subscriptions table if it doesn't exist."""
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT UNIQUE NOT NULL,
                    status TEXT NOT NULL DEFAULT 'inactive',
                    entitlement_status TEXT,
                    trial_end TEXT,
                    current_period_end TEXT,
                    revenuecat_user_id TEXT,
                    revenuecat_subscription_id TEXT,
                    original_transaction_id TEXT,
                    stripe_customer_id TEXT,
                    stripe_subscription_id TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_user_subscriptions_revenuecat_user_id "
                "ON user_subscriptions(revenuecat_user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_user_subscriptions_stripe_customer_id "
                "ON user_subscriptions(stripe_customer_id)"
            )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = connect(self.db_path)
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            if "FOREIGN KEY" in str(exc).upper():
                raise ForeignKeyViolationError(str(exc)) from exc
            raise LedgerUnavailableError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise LedgerUnavailableError(str(exc)) from exc
        finally:
            conn.close()

    def get_by_user_id(self, user_id: str) -> Optional[SubscriptionSnapshot]:
        """Get the ledger row for a user."""
        return self._fetch_one("SELECT * FROM user_subscriptions WHERE user_id = ?", user_id)

    def get_by_revenuecat_user_id(self, revenuecat_user_id: str) -> Optional[SubscriptionSnapshot]:
        """Get the ledger row linked to a RevenueCat app user id."""
        return self._fetch_one(
            "SELECT * FROM user_subscriptions WHERE revenuecat_user_id = ? "
            "ORDER BY updated_at DESC LIMIT 1",
            revenuecat_user_id,
        )

    def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[SubscriptionSnapshot]:
        """Get the ledger row linked to a Stripe customer."""
        return self._fetch_one(
            "SELECT * FROM user_subscriptions WHERE stripe_customer_id = ? "
            "ORDER BY updated_at DESC LIMIT 1",
            stripe_customer_id,
        )

    def upsert(self, user_id: str, update: SnapshotUpdate) -> SubscriptionSnapshot:
        """
        Insert or update the user's row, writing only the fields set on ``update``.

        Raises:
            ForeignKeyViolationError: If the user no longer exists
            LedgerUnavailableError: On any other database failure
        """
        changes = self._serialize(update.changes())
        now = format_write_marker(utc_now())
        columns = ["user_id", *changes.keys(), "created_at", "updated_at"]
        values = [user_id, *changes.values(), now, now]
        assignments = ", ".join(
            f"{column} = excluded.{column}" for column in [*changes.keys(), "updated_at"]
        )
        placeholders = ", ".join("?" for _ in columns)

        with self._connection() as conn:
            conn.execute(
                f"""
                INSERT INTO user_subscriptions ({", ".join(columns)})
                VALUES ({placeholders})
                ON CONFLICT(user_id) DO UPDATE SET {assignments}
                """,
                values,
            )
            row = conn.execute(
                "SELECT * FROM user_subscriptions WHERE user_id = ?", (user_id,)
            ).fetchone()

        return self._row_to_snapshot(row)

    def apply_client_sync(self, user_id: str, update: SnapshotUpdate, observed_at: datetime) -> bool:
        """
        Write a client-observed provider status onto an existing row.

        The write is skipped when the row was updated after ``observed_at``, so a
        webhook that landed while the client was querying the provider wins.

        Returns:
            True if the row was written, False if it was newer than the observation

        Raises:
            ValueError: If the update carries transaction id fields
            RecordMissingError: If the user has no ledger row yet
            ForeignKeyViolationError: If the user no longer exists
        """
        changes = update.changes()
        forbidden = TRANSACTION_FIELDS.intersection(changes)
        if forbidden:
            raise ValueError(f"Client sync cannot write {', '.join(sorted(forbidden))}")
        if not changes:
            return False

        serialized = self._serialize(changes)
        assignments = ", ".join(f"{column} = ?" for column in serialized)
        now = format_write_marker(utc_now())

        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE user_subscriptions
                SET {assignments}, updated_at = ?
                WHERE user_id = ? AND updated_at <= ?
                """,
                (*serialized.values(), now, user_id, format_write_marker(observed_at)),
            )
            if cursor.rowcount:
                return True
            exists = conn.execute(
                "SELECT 1 FROM user_subscriptions WHERE user_id = ?", (user_id,)
            ).fetchone()

        if not exists:
            raise RecordMissingError(f"No subscription record for user {user_id}")
        logger.info("Skipping client sync for %s: ledger row is newer than observation", user_id)
        return False

    def ensure_record(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> SubscriptionSnapshot:
        """Create an inactive row for the user, or back-fill empty name fields."""
        existing = self.get_by_user_id(user_id)
        if existing is None:
            return self.upsert(
                user_id,
                SnapshotUpdate(first_name=first_name, last_name=last_name),
            )

        backfill = SnapshotUpdate(
            first_name=first_name if not existing.first_name else None,
            last_name=last_name if not existing.last_name else None,
        )
        if backfill.is_empty():
            return existing
        return self.upsert(user_id, backfill)

    def _fetch_one(self, query: str, value: str) -> Optional[SubscriptionSnapshot]:
        with self._connection() as conn:
            row = conn.execute(query, (value,)).fetchone()

        if not row:
            return None

        return self._row_to_snapshot(row)

    @staticmethod
    def _serialize(changes: Dict[str, Any]) -> Dict[str, Any]:
        serialized = {}
        for column, value in changes.items():
            if column in _TIMESTAMP_FIELDS:
                serialized[column] = format_timestamp(value)
            elif hasattr(value, "value"):
                serialized[column] = value.value
            else:
                serialized[column] = value
        return serialized

    def _row_to_snapshot(self, row: sqlite3.Row) -> SubscriptionSnapshot:
        """Convert database row to SubscriptionSnapshot entity."""
        return SubscriptionSnapshot(
            user_id=row["user_id"],
            status=row["status"],
            entitlement_status=row["entitlement_status"],
            trial_end=parse_timestamp(row["trial_end"]),
            current_period_end=parse_timestamp(row["current_period_end"]),
            revenuecat_user_id=row["revenuecat_user_id"],
            revenuecat_subscription_id=row["revenuecat_subscription_id"],
            original_transaction_id=row["original_transaction_id"],
            stripe_customer_id=row["stripe_customer_id"],
            stripe_subscription_id=row["stripe_subscription_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )
