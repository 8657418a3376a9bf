import sqlite3
import threading
from datetime import date
from pathlib import Path
from typing import List, Optional

from ...domain.models import DailyChallenge, ProgressRecord, User
from ...domain.ports.persistence import PersistenceGateway
from ...domain.timestamps import format_timestamp, parse_timestamp, utc_now


def connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the account and progress gateway."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = connect(path)
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS user_progress (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    question_id TEXT NOT NULL,
                    is_correct INTEGER,
                    category TEXT,
                    completed_day TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_user_progress_user_id
                    ON user_progress(user_id);

                CREATE TABLE IF NOT EXISTS daily_challenges (
                    challenge_date TEXT PRIMARY KEY,
                    question_id TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    # UserRepository API ----------------------------------------------------
    def get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def user_exists(self, user_id: str) -> bool:
        return self.get_user_by_id(user_id) is not None

    def create_user(self, user_id: str, email: Optional[str] = None) -> User:
        now = format_timestamp(utc_now())
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO users (id, email, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET email = COALESCE(excluded.email, users.email)",
                (user_id, email, now),
            )
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row)

    def delete_user(self, user_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    # ProgressRepository API ------------------------------------------------
    def record_progress(
        self,
        user_id: str,
        question_id: str,
        is_correct: bool,
        category: Optional[str],
        completed_day: date,
    ) -> ProgressRecord:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO user_progress (
                    user_id, question_id, is_correct, category, completed_day, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    question_id,
                    int(is_correct),
                    category,
                    completed_day.isoformat(),
                    format_timestamp(utc_now()),
                ),
            )
        return ProgressRecord(
            user_id=user_id,
            question_id=question_id,
            is_correct=is_correct,
            category=category,
            completed_day=completed_day,
        )

    def count_progress(self, user_id: str) -> int:
        with self._lock:
            cur = self._conn.execute(
                "SELECT COUNT(*) AS total FROM user_progress WHERE user_id = ?", (user_id,)
            )
            row = cur.fetchone()
        return int(row["total"]) if row else 0

    def get_progress_history(self, user_id: str) -> List[ProgressRecord]:
        with self._lock:
            cur = self._conn.execute(
                """
                SELECT * FROM user_progress
                WHERE user_id = ?
                ORDER BY completed_day DESC, id DESC
                """,
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_progress(row) for row in rows]

    def schedule_challenge(self, challenge_date: date, question_id: str) -> DailyChallenge:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO daily_challenges (challenge_date, question_id) VALUES (?, ?) "
                "ON CONFLICT(challenge_date) DO UPDATE SET question_id = excluded.question_id",
                (challenge_date.isoformat(), question_id),
            )
        return DailyChallenge(challenge_date=challenge_date, question_id=question_id)

    def get_daily_challenges(self) -> List[DailyChallenge]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT challenge_date, question_id FROM daily_challenges ORDER BY challenge_date"
            )
            rows = cur.fetchall()
        return [
            DailyChallenge(
                challenge_date=date.fromisoformat(row["challenge_date"]),
                question_id=row["question_id"],
            )
            for row in rows
        ]

    # Helpers ---------------------------------------------------------------
    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            created_at=parse_timestamp(row["created_at"]),
        )

    @staticmethod
    def _row_to_progress(row: sqlite3.Row) -> ProgressRecord:
        completed = row["completed_day"]
        is_correct = row["is_correct"]
        return ProgressRecord(
            user_id=row["user_id"],
            question_id=row["question_id"],
            is_correct=None if is_correct is None else bool(is_correct),
            category=row["category"],
            completed_day=date.fromisoformat(completed) if completed else None,
        )
