"""RevenueCat webhook handling: resolve the user and map events to ledger updates."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from dailydev.domain.errors import ForeignKeyViolationError
from dailydev.domain.models.subscription import (
    EntitlementStatus,
    SnapshotUpdate,
    SubscriptionStatus,
)
from dailydev.domain.models.user import is_internal_user_id
from dailydev.domain.ports.persistence import SubscriptionLedger, UserRepository
from dailydev.domain.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class WebhookOutcome(str, Enum):
    MUTATED = "mutated"
    IGNORED_UNKNOWN_USER = "ignored_unknown_user"
    IGNORED_UNKNOWN_EVENT = "ignored_unknown_event"


INITIAL_PURCHASE = "INITIAL_PURCHASE"
RENEWAL = "RENEWAL"
CANCELLATION = "CANCELLATION"
UNCANCELLATION = "UNCANCELLATION"
NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"
BILLING_ISSUE = "BILLING_ISSUE"
SUBSCRIPTION_PAUSED = "SUBSCRIPTION_PAUSED"
SUBSCRIPTION_RESUMED = "SUBSCRIPTION_RESUMED"
SUBSCRIPTION_UNPAUSED = "SUBSCRIPTION_UNPAUSED"
SUBSCRIPTION_EXTENDED = "SUBSCRIPTION_EXTENDED"
PRODUCT_CHANGE = "PRODUCT_CHANGE"
EXPIRATION = "EXPIRATION"

_PURCHASE_EVENTS = frozenset({INITIAL_PURCHASE, RENEWAL, NON_RENEWING_PURCHASE, PRODUCT_CHANGE})
# Events that move the renewal boundary without carrying a new purchase.
_PERIOD_EVENTS = frozenset(
    {UNCANCELLATION, SUBSCRIPTION_RESUMED, SUBSCRIPTION_UNPAUSED, SUBSCRIPTION_EXTENDED}
)

# Alias map keys that carry the internal user id.
ALIAS_USER_ID_KEYS = ("user_id", "supabase_user_id")

_STATUS_TABLE = {
    RENEWAL: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    CANCELLATION: (SubscriptionStatus.INACTIVE, EntitlementStatus.EXPIRED),
    UNCANCELLATION: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    NON_RENEWING_PURCHASE: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    BILLING_ISSUE: (SubscriptionStatus.PAST_DUE, EntitlementStatus.BILLING_ISSUE),
    SUBSCRIPTION_PAUSED: (SubscriptionStatus.PAUSED, EntitlementStatus.PAUSED),
    SUBSCRIPTION_RESUMED: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    SUBSCRIPTION_UNPAUSED: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    SUBSCRIPTION_EXTENDED: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    PRODUCT_CHANGE: (SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
    EXPIRATION: (SubscriptionStatus.INACTIVE, EntitlementStatus.EXPIRED),
}


def _event_time(event: Dict[str, Any], iso_key: str, ms_key: str):
    return parse_timestamp(event.get(iso_key)) or parse_timestamp(event.get(ms_key))


def normalize_event(event: Dict[str, Any]) -> Optional[SnapshotUpdate]:
    """
    Translate a RevenueCat event into the ledger fields it changes.

    Returns None for event types that do not affect subscription status.
    """
    event_type = str(event.get("type") or "").upper()
    if event_type != INITIAL_PURCHASE and event_type not in _STATUS_TABLE:
        return None
    expires_at = _event_time(event, "expires_at", "expiration_at_ms")

    if event_type == INITIAL_PURCHASE:
        trial_end = _event_time(event, "trial_ends_at", "trial_ends_at_ms")
        in_trial = trial_end is not None or str(event.get("period_type") or "").upper() == "TRIAL"
        if in_trial:
            update = SnapshotUpdate(
                status=SubscriptionStatus.TRIALING,
                entitlement_status=EntitlementStatus.ACTIVE,
                trial_end=trial_end or expires_at,
            )
        else:
            update = SnapshotUpdate(
                status=SubscriptionStatus.ACTIVE,
                entitlement_status=EntitlementStatus.ACTIVE,
            )
    else:
        status, entitlement_status = _STATUS_TABLE[event_type]
        update = SnapshotUpdate(status=status, entitlement_status=entitlement_status)

    if event_type in _PURCHASE_EVENTS:
        update.current_period_end = expires_at
        update.revenuecat_subscription_id = event.get("transaction_id")
        if event_type != PRODUCT_CHANGE:
            update.original_transaction_id = event.get("original_transaction_id")
    elif event_type in _PERIOD_EVENTS:
        update.current_period_end = expires_at

    if event_type == EXPIRATION:
        update.current_period_end = (
            _event_time(event, "event_timestamp", "event_timestamp_ms") or utc_now()
        )

    update.revenuecat_user_id = event.get("app_user_id")
    return update


class RevenueCatWebhookService:
    """Applies RevenueCat webhook events to the subscription ledger."""

    def __init__(self, ledger: SubscriptionLedger, users: UserRepository):
        self._ledger = ledger
        self._users = users

    def resolve_user_id(self, event: Dict[str, Any]) -> Optional[str]:
        """Find the internal user for an event; the first matching rule wins."""
        app_user_id = event.get("app_user_id")

        if app_user_id:
            linked = self._ledger.get_by_revenuecat_user_id(app_user_id)
            if linked is not None:
                return linked.user_id

            if is_internal_user_id(app_user_id) and self._users.user_exists(app_user_id):
                return app_user_id

        aliases = event.get("aliases") or {}
        if isinstance(aliases, dict):
            candidates = [aliases.get(key) for key in ALIAS_USER_ID_KEYS]
        elif isinstance(aliases, list):
            candidates = list(aliases)
        else:
            candidates = []

        attributes = event.get("subscriber_attributes") or {}
        if isinstance(attributes, dict):
            alias = attributes.get("user_id")
            if isinstance(alias, dict):
                alias = alias.get("value")
            candidates.append(alias)

        for candidate in candidates:
            if is_internal_user_id(candidate) and self._users.user_exists(candidate):
                return candidate

        return None

    def handle_event(self, event: Dict[str, Any]) -> WebhookOutcome:
        update = normalize_event(event)
        event_type = event.get("type")
        if update is None:
            logger.info("Ignoring RevenueCat event type %s", event_type)
            return WebhookOutcome.IGNORED_UNKNOWN_EVENT

        user_id = self.resolve_user_id(event)
        if user_id is None:
            logger.warning(
                "Orphaned RevenueCat event %s for app_user_id %s",
                event_type,
                event.get("app_user_id"),
            )
            return WebhookOutcome.IGNORED_UNKNOWN_USER

        try:
            snapshot = self._ledger.upsert(user_id, update)
        except ForeignKeyViolationError:
            logger.warning("User %s was deleted before %s could be applied", user_id, event_type)
            return WebhookOutcome.IGNORED_UNKNOWN_USER

        logger.info(
            "Applied RevenueCat %s to %s: status=%s",
            event_type,
            user_id,
            snapshot.status.value,
        )
        return WebhookOutcome.MUTATED
