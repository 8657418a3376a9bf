"""Asynchronous ledger access for the client reconciliation layer."""

import asyncio
from datetime import datetime
from typing import Optional

from dailydev.domain.models.subscription import SnapshotUpdate, SubscriptionSnapshot
from dailydev.domain.ports.persistence import SubscriptionLedger


class ThreadedLedgerClient:
    """Runs blocking ledger calls on a worker thread so the event loop never waits on I/O."""

    def __init__(self, ledger: SubscriptionLedger):
        self._ledger = ledger

    async def fetch_snapshot(self, user_id: str) -> Optional[SubscriptionSnapshot]:
        return await asyncio.to_thread(self._ledger.get_by_user_id, user_id)

    async def sync_provider_status(
        self, user_id: str, update: SnapshotUpdate, observed_at: datetime
    ) -> bool:
        return await asyncio.to_thread(
            self._ledger.apply_client_sync, user_id, update, observed_at
        )
