"""Tests for the Stripe webhook endpoint."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import stripe
from fastapi.testclient import TestClient

from dailydev.core.app_factory import create_application
from dailydev.domain.models import EntitlementStatus, SnapshotUpdate, SubscriptionStatus
from dailydev.services.stripe_service import map_stripe_status

from conftest import USER_ID

JAN_2026_S = 1767225600
JAN_2026 = datetime(2026, 1, 1, tzinfo=timezone.utc)
HEADERS = {"stripe-signature": "t=1,v1=test"}


@pytest.fixture
def seeded(container):
    container.persistence.create_user(USER_ID)
    container.subscription_repository.upsert(USER_ID, SnapshotUpdate(stripe_customer_id="cus_123"))
    return container


@pytest.fixture
def verified():
    with patch("stripe.Webhook.construct_event") as construct_event:
        yield construct_event


def post_event(client, event):
    return client.post("/stripe-webhook", content=json.dumps(event), headers=HEADERS)


def subscription_event(event_type, **fields):
    data = {"id": "sub_1", "customer": "cus_123", "status": "active", **fields}
    return {"type": event_type, "data": {"object": data}}


@pytest.mark.parametrize(
    "stripe_status, expected",
    [
        ("trialing", SubscriptionStatus.TRIALING),
        ("active", SubscriptionStatus.ACTIVE),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("unpaid", SubscriptionStatus.PAST_DUE),
        ("paused", SubscriptionStatus.PAUSED),
        ("canceled", SubscriptionStatus.INACTIVE),
        ("incomplete_expired", SubscriptionStatus.INACTIVE),
        (None, SubscriptionStatus.INACTIVE),
    ],
)
def test_status_mapping(stripe_status, expected):
    assert map_stripe_status(stripe_status) is expected


def test_subscription_updated(client: TestClient, seeded, verified):
    event = subscription_event(
        "customer.subscription.updated",
        status="past_due",
        items={"data": [{"current_period_end": JAN_2026_S}]},
    )

    response = post_event(client, event)

    assert response.status_code == 200
    row = seeded.subscription_repository.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.PAST_DUE
    assert row.entitlement_status is EntitlementStatus.BILLING_ISSUE
    assert row.stripe_subscription_id == "sub_1"
    assert row.current_period_end == JAN_2026


def test_trialing_subscription_created(client: TestClient, seeded, verified):
    event = subscription_event(
        "customer.subscription.created",
        status="trialing",
        trial_end=JAN_2026_S,
        current_period_end=JAN_2026_S,
    )

    assert post_event(client, event).status_code == 200

    row = seeded.subscription_repository.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.TRIALING
    assert row.entitlement_status is EntitlementStatus.ACTIVE
    assert row.trial_end == JAN_2026


def test_subscription_deleted_deactivates(client: TestClient, seeded, verified):
    response = post_event(client, subscription_event("customer.subscription.deleted"))

    assert response.status_code == 200
    row = seeded.subscription_repository.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.INACTIVE
    assert row.entitlement_status is EntitlementStatus.EXPIRED


def test_payment_failed(client: TestClient, seeded, verified):
    event = {"type": "invoice.payment_failed", "data": {"object": {"customer": "cus_123"}}}

    assert post_event(client, event).status_code == 200
    row = seeded.subscription_repository.get_by_user_id(USER_ID)
    assert row.status is SubscriptionStatus.PAST_DUE


def test_checkout_completed_links_customer(client: TestClient, container, verified):
    container.persistence.create_user(USER_ID)
    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "mode": "subscription",
                "customer": "cus_new",
                "subscription": "sub_new",
                "metadata": {"user_id": USER_ID},
            }
        },
    }

    assert post_event(client, event).status_code == 200
    row = container.subscription_repository.get_by_stripe_customer_id("cus_new")
    assert row.user_id == USER_ID
    assert row.stripe_subscription_id == "sub_new"


def test_unmapped_customer_is_not_found(client: TestClient, verified):
    event = subscription_event("customer.subscription.updated", customer="cus_unknown")

    assert post_event(client, event).status_code == 404


def test_unhandled_event_is_acknowledged(client: TestClient, verified):
    response = post_event(client, {"type": "charge.succeeded", "data": {"object": {}}})

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "ignored"}


def test_invalid_signature(client: TestClient, verified):
    verified.side_effect = stripe.SignatureVerificationError("bad signature", "t=1,v1=test")

    response = post_event(client, subscription_event("customer.subscription.updated"))

    assert response.status_code == 400


def test_invalid_payload(client: TestClient, verified):
    response = client.post("/stripe-webhook", content=b"not json", headers=HEADERS)

    assert response.status_code == 400


def test_missing_webhook_secret(env):
    env.delenv("STRIPE_WEBHOOK_SECRET")
    with TestClient(create_application()) as unconfigured:
        response = unconfigured.post("/stripe-webhook", content=b"{}", headers=HEADERS)

    assert response.status_code == 500
