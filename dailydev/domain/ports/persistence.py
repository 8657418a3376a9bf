from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Protocol

from ..models import (
    CustomerInfo,
    DailyChallenge,
    ProgressRecord,
    SnapshotUpdate,
    SubscriptionSnapshot,
    User,
)


class UserRepository(Protocol):
    """Persistence functions related to user accounts."""

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    def user_exists(self, user_id: str) -> bool:
        ...

    def create_user(self, user_id: str, email: Optional[str] = None) -> User:
        ...

    def delete_user(self, user_id: str) -> None:
        ...


class ProgressRepository(Protocol):
    """Answer history and the daily question schedule."""

    def record_progress(
        self,
        user_id: str,
        question_id: str,
        is_correct: bool,
        category: Optional[str],
        completed_day: date,
    ) -> ProgressRecord:
        ...

    def count_progress(self, user_id: str) -> int:
        ...

    def get_progress_history(self, user_id: str) -> List[ProgressRecord]:
        ...

    def schedule_challenge(self, challenge_date: date, question_id: str) -> DailyChallenge:
        ...

    def get_daily_challenges(self) -> List[DailyChallenge]:
        ...


class SubscriptionLedger(Protocol):
    """The ``user_subscriptions`` table: one row per user, upsert-only."""

    def get_by_user_id(self, user_id: str) -> Optional[SubscriptionSnapshot]:
        ...

    def get_by_revenuecat_user_id(self, revenuecat_user_id: str) -> Optional[SubscriptionSnapshot]:
        ...

    def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[SubscriptionSnapshot]:
        ...

    def upsert(self, user_id: str, update: SnapshotUpdate) -> SubscriptionSnapshot:
        ...

    def apply_client_sync(self, user_id: str, update: SnapshotUpdate, observed_at: datetime) -> bool:
        ...

    def ensure_record(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> SubscriptionSnapshot:
        ...


class LedgerClient(Protocol):
    """Asynchronous ledger access used by the client reconciliation layer."""

    async def fetch_snapshot(self, user_id: str) -> Optional[SubscriptionSnapshot]:
        ...

    async def sync_provider_status(
        self, user_id: str, update: SnapshotUpdate, observed_at: datetime
    ) -> bool:
        ...


class EntitlementProvider(Protocol):
    """Purchase provider queried for the current entitlement state."""

    async def get_customer_info(self, app_user_id: str) -> CustomerInfo:
        ...


class PersistenceGateway(UserRepository, ProgressRepository, Protocol):
    """Composite gateway combining the account and progress persistence concerns."""

    pass
