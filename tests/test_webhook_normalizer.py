"""Tests for RevenueCat event normalization and user resolution."""

from datetime import datetime, timezone

import pytest

from dailydev.domain.models import EntitlementStatus, SnapshotUpdate, SubscriptionStatus
from dailydev.services.webhook_normalizer import (
    RevenueCatWebhookService,
    WebhookOutcome,
    normalize_event,
)

from conftest import OTHER_USER_ID, USER_ID

JAN_2026 = datetime(2026, 1, 1, tzinfo=timezone.utc)
JAN_2026_MS = 1767225600000


@pytest.fixture
def service(ledger, persistence):
    return RevenueCatWebhookService(ledger, persistence)


@pytest.fixture
def linked_user(ledger, user):
    """User whose ledger row is already linked to RevenueCat id ``u1``."""
    ledger.upsert(USER_ID, SnapshotUpdate(revenuecat_user_id="u1"))
    return user


def comparable(snapshot):
    state = dict(vars(snapshot))
    state.pop("updated_at")
    return state


# ============================================================================
# normalize_event
# ============================================================================


def test_initial_purchase_with_trial_period():
    update = normalize_event(
        {
            "type": "INITIAL_PURCHASE",
            "app_user_id": "u1",
            "period_type": "TRIAL",
            "expiration_at_ms": JAN_2026_MS,
            "transaction_id": "t1",
            "original_transaction_id": "o1",
        }
    )
    assert update.status is SubscriptionStatus.TRIALING
    assert update.entitlement_status is EntitlementStatus.ACTIVE
    assert update.trial_end == JAN_2026
    assert update.current_period_end == JAN_2026
    assert update.revenuecat_subscription_id == "t1"
    assert update.original_transaction_id == "o1"
    assert update.revenuecat_user_id == "u1"


def test_initial_purchase_prefers_trial_ends_at():
    update = normalize_event(
        {
            "type": "INITIAL_PURCHASE",
            "app_user_id": "u1",
            "trial_ends_at": "2025-12-08T00:00:00Z",
            "expires_at": "2026-01-01T00:00:00Z",
        }
    )
    assert update.status is SubscriptionStatus.TRIALING
    assert update.trial_end == datetime(2025, 12, 8, tzinfo=timezone.utc)
    assert update.current_period_end == JAN_2026


def test_initial_purchase_without_trial():
    update = normalize_event(
        {"type": "INITIAL_PURCHASE", "app_user_id": "u1", "period_type": "NORMAL"}
    )
    assert update.status is SubscriptionStatus.ACTIVE
    assert update.trial_end is None


@pytest.mark.parametrize(
    "event_type, status, entitlement_status",
    [
        ("RENEWAL", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("CANCELLATION", SubscriptionStatus.INACTIVE, EntitlementStatus.EXPIRED),
        ("UNCANCELLATION", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("NON_RENEWING_PURCHASE", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("BILLING_ISSUE", SubscriptionStatus.PAST_DUE, EntitlementStatus.BILLING_ISSUE),
        ("SUBSCRIPTION_PAUSED", SubscriptionStatus.PAUSED, EntitlementStatus.PAUSED),
        ("SUBSCRIPTION_RESUMED", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("SUBSCRIPTION_UNPAUSED", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("SUBSCRIPTION_EXTENDED", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("PRODUCT_CHANGE", SubscriptionStatus.ACTIVE, EntitlementStatus.ACTIVE),
        ("EXPIRATION", SubscriptionStatus.INACTIVE, EntitlementStatus.EXPIRED),
    ],
)
def test_event_status_table(event_type, status, entitlement_status):
    update = normalize_event({"type": event_type, "app_user_id": "u1"})
    assert update.status is status
    assert update.entitlement_status is entitlement_status
    assert update.revenuecat_user_id == "u1"


def test_cancellation_leaves_subscription_ids_untouched():
    update = normalize_event(
        {"type": "CANCELLATION", "app_user_id": "u1", "transaction_id": "t9"}
    )
    assert update.revenuecat_subscription_id is None
    assert update.original_transaction_id is None


def test_product_change_writes_new_transaction_only():
    update = normalize_event(
        {
            "type": "PRODUCT_CHANGE",
            "app_user_id": "u1",
            "transaction_id": "t2",
            "original_transaction_id": "o1",
        }
    )
    assert update.revenuecat_subscription_id == "t2"
    assert update.original_transaction_id is None


@pytest.mark.parametrize(
    "event_type",
    ["UNCANCELLATION", "SUBSCRIPTION_RESUMED", "SUBSCRIPTION_UNPAUSED", "SUBSCRIPTION_EXTENDED"],
)
def test_reactivation_moves_period_end_without_transaction_ids(event_type):
    update = normalize_event(
        {
            "type": event_type,
            "app_user_id": "u1",
            "expires_at": "2026-01-01T00:00:00Z",
            "transaction_id": "t4",
            "original_transaction_id": "o1",
        }
    )
    assert update.current_period_end == JAN_2026
    assert update.revenuecat_subscription_id is None
    assert update.original_transaction_id is None


def test_malformed_expiry_is_rejected():
    with pytest.raises(ValueError):
        normalize_event({"type": "RENEWAL", "app_user_id": "u1", "expires_at": "not-a-date"})


def test_expiration_uses_event_time():
    update = normalize_event(
        {"type": "EXPIRATION", "app_user_id": "u1", "event_timestamp_ms": JAN_2026_MS}
    )
    assert update.current_period_end == JAN_2026


def test_expiration_without_event_time_uses_now():
    before = datetime.now(timezone.utc)
    update = normalize_event({"type": "EXPIRATION", "app_user_id": "u1"})
    assert update.current_period_end >= before


def test_unknown_event_type():
    assert normalize_event({"type": "TEST", "app_user_id": "u1"}) is None
    assert normalize_event({"app_user_id": "u1"}) is None


# ============================================================================
# User resolution
# ============================================================================


def test_resolves_by_linked_revenuecat_id(service, linked_user):
    assert service.resolve_user_id({"app_user_id": "u1"}) == USER_ID


def test_resolves_internal_user_id(service, user):
    assert service.resolve_user_id({"app_user_id": USER_ID}) == USER_ID


def test_internal_id_of_unknown_user_does_not_resolve(service, user):
    assert service.resolve_user_id({"app_user_id": OTHER_USER_ID}) is None


@pytest.mark.parametrize("alias", [USER_ID, {"value": USER_ID}])
def test_resolves_subscriber_attribute_alias(service, user, alias):
    event = {"app_user_id": "$RCAnonymousID:abc", "subscriber_attributes": {"user_id": alias}}
    assert service.resolve_user_id(event) == USER_ID


@pytest.mark.parametrize("key", ["user_id", "supabase_user_id"])
def test_resolves_alias_map(service, user, key):
    event = {"app_user_id": "$RCAnonymousID:abc", "aliases": {key: USER_ID}}
    assert service.resolve_user_id(event) == USER_ID


def test_alias_map_ignores_other_keys(service, user):
    event = {"app_user_id": "$RCAnonymousID:abc", "aliases": {"email": USER_ID}}
    assert service.resolve_user_id(event) is None


def test_numeric_app_user_id_does_not_resolve(service, user):
    assert service.resolve_user_id({"app_user_id": 12345}) is None


def test_resolves_aliases_list(service, user):
    event = {"app_user_id": "$RCAnonymousID:abc", "aliases": ["$RCAnonymousID:abc", USER_ID]}
    assert service.resolve_user_id(event) == USER_ID


# ============================================================================
# handle_event
# ============================================================================


def test_trial_purchase_for_linked_user(service, ledger, linked_user):
    event = {
        "type": "INITIAL_PURCHASE",
        "app_user_id": "u1",
        "period_type": "TRIAL",
        "expiration_at_ms": JAN_2026_MS,
        "transaction_id": "t1",
        "original_transaction_id": "o1",
    }

    assert service.handle_event(event) is WebhookOutcome.MUTATED

    row = ledger.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.TRIALING
    assert row.entitlement_status is EntitlementStatus.ACTIVE
    assert row.trial_end == JAN_2026
    assert row.revenuecat_subscription_id == "t1"
    assert row.original_transaction_id == "o1"


def test_applying_same_event_twice_is_idempotent(service, ledger, linked_user):
    event = {
        "type": "RENEWAL",
        "app_user_id": "u1",
        "expiration_at_ms": JAN_2026_MS,
        "transaction_id": "t3",
        "original_transaction_id": "o1",
    }
    service.handle_event(event)
    first = ledger.get_by_user_id(USER_ID)
    service.handle_event(event)
    second = ledger.get_by_user_id(USER_ID)

    assert comparable(first) == comparable(second)


def test_renewal_keeps_trial_end(service, ledger, linked_user):
    ledger.upsert(
        USER_ID,
        SnapshotUpdate(status=SubscriptionStatus.TRIALING, trial_end=JAN_2026),
    )
    service.handle_event({"type": "RENEWAL", "app_user_id": "u1"})

    row = ledger.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.ACTIVE
    assert row.trial_end == JAN_2026


def test_first_event_links_revenuecat_id(service, ledger, user):
    service.handle_event({"type": "INITIAL_PURCHASE", "app_user_id": USER_ID})

    row = ledger.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.ACTIVE
    assert row.revenuecat_user_id == USER_ID


def test_orphaned_event_is_ignored(service, ledger, user):
    outcome = service.handle_event({"type": "RENEWAL", "app_user_id": "$RCAnonymousID:nobody"})

    assert outcome is WebhookOutcome.IGNORED_UNKNOWN_USER
    assert ledger.get_by_user_id(USER_ID) is None


def test_alias_map_event_links_user(service, ledger, user):
    outcome = service.handle_event(
        {"type": "RENEWAL", "app_user_id": "$RCAnonymousID:abc", "aliases": {"user_id": USER_ID}}
    )

    assert outcome is WebhookOutcome.MUTATED
    assert ledger.get_by_revenuecat_user_id("$RCAnonymousID:abc").user_id == USER_ID


def test_unknown_event_is_ignored(service, ledger, linked_user):
    before = ledger.get_by_user_id(USER_ID)
    outcome = service.handle_event({"type": "TRANSFER", "app_user_id": "u1"})

    assert outcome is WebhookOutcome.IGNORED_UNKNOWN_EVENT
    assert comparable(ledger.get_by_user_id(USER_ID)) == comparable(before)
