"""Client-side reconciliation between the purchase provider and the subscription ledger."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..domain.errors import (
    ForeignKeyViolationError,
    LedgerUnavailableError,
    ProviderUnavailableError,
    RecordMissingError,
    RequestCancelledError,
)
from ..domain.models.entitlement import PERIOD_TRIAL, EntitlementInfo, ProviderStatus
from ..domain.models.subscription import SubscriptionSnapshot, SubscriptionStatus
from ..domain.ports.persistence import EntitlementProvider, LedgerClient
from ..domain.timestamps import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CACHE_WINDOW_SECONDS = 300.0
DEFAULT_TIMEOUT_SECONDS = 15.0

SnapshotListener = Callable[[Optional[SubscriptionSnapshot]], None]
T = TypeVar("T")


def resolve_active_entitlement(
    entitlements: Dict[str, EntitlementInfo], expected_id: str
) -> Optional[EntitlementInfo]:
    """
    Pick the entitlement that decides access.

    The expected id wins when it is active. Otherwise the first active
    entitlement under any id is used, so a renamed entitlement in the provider
    catalog does not lock paying users out. If nothing is active the expected
    entitlement (possibly inactive, possibly None) is returned.
    """
    entitlement = entitlements.get(expected_id)
    if entitlement is None or not entitlement.is_active:
        for key, candidate in entitlements.items():
            if candidate.is_active:
                logger.warning(
                    "Entitlement %r missing or inactive; using active entitlement %r",
                    expected_id,
                    key,
                )
                return candidate
    return entitlement


def provider_status_from_entitlement(entitlement: Optional[EntitlementInfo]) -> ProviderStatus:
    if entitlement is None or not entitlement.is_active:
        return ProviderStatus(
            status=SubscriptionStatus.INACTIVE,
            current_period_end=entitlement.expires_at if entitlement else None,
        )

    in_trial = entitlement.will_renew and entitlement.period_type == PERIOD_TRIAL
    return ProviderStatus(
        status=SubscriptionStatus.TRIALING if in_trial else SubscriptionStatus.ACTIVE,
        is_in_trial=in_trial,
        trial_end=entitlement.expires_at if in_trial else None,
        current_period_end=entitlement.expires_at,
    )


class SubscriptionReconciler:
    """
    Keeps one user's cached ledger snapshot consistent with the purchase provider.

    ``fetch_status`` and ``sync_provider_status`` each own a single in-flight
    task. Concurrent callers await the same task through ``asyncio.shield`` so
    a cancelled caller never cancels work other callers are waiting on.
    """

    def __init__(
        self,
        user_id: str,
        ledger: LedgerClient,
        provider: EntitlementProvider,
        *,
        entitlement_id: str,
        cache_window: float = DEFAULT_CACHE_WINDOW_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not entitlement_id:
            raise RuntimeError("Missing RevenueCat entitlement identifier.")
        self._user_id = user_id
        self._ledger = ledger
        self._provider = provider
        self._entitlement_id = entitlement_id
        self._cache_window = cache_window
        self._timeout = timeout
        self._clock = clock

        self._last_snapshot: Optional[SubscriptionSnapshot] = None
        self._last_fetch_at: Optional[float] = None
        self._inflight_fetch: Optional[asyncio.Task[Optional[SubscriptionSnapshot]]] = None
        self._inflight_sync: Optional[asyncio.Task[Optional[ProviderStatus]]] = None
        self._generation = 0
        self._listeners: List[SnapshotListener] = []

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def last_snapshot(self) -> Optional[SubscriptionSnapshot]:
        return self._last_snapshot

    def add_listener(self, listener: SnapshotListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Public API ---------------------------------------------------------
    async def fetch_status(self, force_refresh: bool = False) -> Optional[SubscriptionSnapshot]:
        """
        Return the user's ledger snapshot, reading through the cache window.

        Raises:
            LedgerUnavailableError: If the ledger read fails; the cached
                snapshot is kept.
        """
        if not force_refresh and self._is_fresh():
            logger.debug("Using cached subscription for %s", self._user_id)
            return self._last_snapshot

        task = self._inflight_fetch
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._fetch(self._generation), name="subscription-fetch"
            )
            self._inflight_fetch = task
            task.add_done_callback(self._release_fetch_slot)

        return await self._await_shared(task, fallback=lambda: self._last_snapshot)

    async def sync_provider_status(self) -> Optional[ProviderStatus]:
        """Push the provider's entitlement state to the ledger. Failures are logged, not raised."""
        task = self._inflight_sync
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._sync(self._generation), name="subscription-sync"
            )
            self._inflight_sync = task
            task.add_done_callback(self._release_sync_slot)

        return await self._await_shared(task, fallback=lambda: None)

    def invalidate_cache(self) -> None:
        """Force the next fetch past the cache window while keeping the last snapshot."""
        self._last_fetch_at = None
        logger.debug("Subscription cache invalidated for %s", self._user_id)

    def clear_all(self) -> None:
        """Drop all cached state and cancel in-flight work. Call before the session ends."""
        self._generation += 1
        for task in (self._inflight_fetch, self._inflight_sync):
            if task is not None and not task.done():
                task.cancel()
        self._inflight_fetch = None
        self._inflight_sync = None
        self._last_snapshot = None
        self._last_fetch_at = None
        self._notify(None)

    # Internals ----------------------------------------------------------
    def _is_fresh(self) -> bool:
        if self._last_snapshot is None or self._last_fetch_at is None:
            return False
        return self._clock() - self._last_fetch_at < self._cache_window

    async def _await_shared(
        self, task: "asyncio.Task[T]", fallback: Callable[[], T]
    ) -> T:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # The shared task was superseded (sign-out); the caller itself is still alive.
                return fallback()
            raise

    async def _fetch(self, generation: int) -> Optional[SubscriptionSnapshot]:
        await self.sync_provider_status()

        try:
            snapshot = await self._with_timeout(self._ledger.fetch_snapshot(self._user_id))
        except RequestCancelledError:
            logger.info("Subscription fetch for %s superseded; keeping cached value", self._user_id)
            return self._last_snapshot
        except asyncio.TimeoutError as exc:
            raise LedgerUnavailableError("Timed out reading subscription ledger") from exc

        if generation != self._generation:
            return self._last_snapshot

        self._last_snapshot = snapshot
        self._last_fetch_at = self._clock()
        logger.info(
            "Subscription status updated for %s: %s",
            self._user_id,
            snapshot.status.value if snapshot else "none",
        )
        self._notify(snapshot)
        return snapshot

    async def _sync(self, generation: int) -> Optional[ProviderStatus]:
        observed_at = utc_now()
        try:
            info = await self._with_timeout(self._provider.get_customer_info(self._user_id))
        except (ProviderUnavailableError, asyncio.TimeoutError) as exc:
            logger.warning("Provider status unavailable for %s: %s", self._user_id, exc)
            return None

        entitlement = resolve_active_entitlement(info.entitlements, self._entitlement_id)
        status = provider_status_from_entitlement(entitlement)

        if generation != self._generation:
            return None

        try:
            await self._with_timeout(
                self._ledger.sync_provider_status(
                    self._user_id,
                    status.to_update(revenuecat_user_id=info.original_app_user_id),
                    observed_at,
                )
            )
        except RecordMissingError:
            logger.info("No subscription record yet for %s; skipping provider sync", self._user_id)
        except ForeignKeyViolationError:
            logger.info("User %s no longer exists; skipping provider sync", self._user_id)
        except (LedgerUnavailableError, RequestCancelledError, asyncio.TimeoutError) as exc:
            logger.warning("Provider sync write failed for %s: %s", self._user_id, exc)
        return status

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._timeout)

    def _release_fetch_slot(self, task: asyncio.Task) -> None:
        if self._inflight_fetch is task:
            self._inflight_fetch = None
        self._consume(task)

    def _release_sync_slot(self, task: asyncio.Task) -> None:
        if self._inflight_sync is task:
            self._inflight_sync = None
        self._consume(task)

    @staticmethod
    def _consume(task: asyncio.Task) -> None:
        if not task.cancelled():
            task.exception()

    def _notify(self, snapshot: Optional[SubscriptionSnapshot]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pragma: no cover
                logger.exception("Subscription listener failed")
