from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Union

from ...domain.errors import LedgerUnavailableError
from ...domain.models import SubscriptionSnapshot
from ...infrastructure.repositories.ledger_client import ThreadedLedgerClient
from ...services.access_policy import FREE_DAY, can_access
from ...services.progress_service import ProgressService
from ...services.reconciliation import SubscriptionReconciler

logger = logging.getLogger(__name__)

SessionInvalidator = Callable[[], Union[None, Awaitable[None]]]


class ClientSession:
    """Subscription state and question access for one signed-in user."""

    def __init__(
        self,
        reconciler: SubscriptionReconciler,
        progress_service: ProgressService,
        free_day: int = FREE_DAY,
    ) -> None:
        self._reconciler = reconciler
        self._progress = progress_service
        self._free_day = free_day
        self._has_answered = False

    @property
    def user_id(self) -> str:
        return self._reconciler.user_id

    @property
    def reconciler(self) -> SubscriptionReconciler:
        return self._reconciler

    async def subscription(self, force_refresh: bool = False) -> Optional[SubscriptionSnapshot]:
        return await self._reconciler.fetch_status(force_refresh=force_refresh)

    async def has_answered_any(self) -> bool:
        # Once true it stays true for the session.
        if not self._has_answered:
            self._has_answered = await asyncio.to_thread(
                self._progress.has_answered_any, self.user_id
            )
        return self._has_answered

    async def can_access_questions(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        try:
            snapshot = await self._reconciler.fetch_status()
        except LedgerUnavailableError as exc:
            logger.warning("Using cached subscription for %s: %s", self.user_id, exc)
            snapshot = self._reconciler.last_snapshot
        return can_access(snapshot, await self.has_answered_any(), today, free_day=self._free_day)

    async def sign_out(self, invalidate_session: Optional[SessionInvalidator] = None) -> None:
        self._reconciler.clear_all()
        self._has_answered = False
        if invalidate_session is not None:
            result = invalidate_session()
            if inspect.isawaitable(result):
                await result
        logger.info("Signed out %s", self.user_id)


def open_client_session(container: Any, user_id: str) -> ClientSession:
    """Build a session wired to the application's ledger and purchase provider."""
    settings = container.settings
    reconciler = SubscriptionReconciler(
        user_id,
        ThreadedLedgerClient(container.subscription_repository),
        container.revenuecat_client,
        entitlement_id=settings.revenuecat_entitlement_id,
        cache_window=settings.subscription_cache_seconds,
        timeout=settings.provider_timeout_seconds,
    )
    return ClientSession(reconciler, container.progress_service, free_day=settings.free_weekday)
