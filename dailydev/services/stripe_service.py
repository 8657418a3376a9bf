"""Stripe webhook handling and trial subscription setup."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import stripe

from ..domain.errors import ForeignKeyViolationError
from ..domain.models.subscription import (
    EntitlementStatus,
    SnapshotUpdate,
    SubscriptionSnapshot,
    SubscriptionStatus,
)
from ..domain.ports.persistence import SubscriptionLedger, UserRepository
from ..domain.timestamps import parse_epoch_seconds

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAUSED,
}

_ENTITLEMENT_MAP = {
    SubscriptionStatus.TRIALING: EntitlementStatus.ACTIVE,
    SubscriptionStatus.ACTIVE: EntitlementStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE: EntitlementStatus.BILLING_ISSUE,
    SubscriptionStatus.PAUSED: EntitlementStatus.PAUSED,
    SubscriptionStatus.INACTIVE: EntitlementStatus.EXPIRED,
}

SUBSCRIPTION_EVENTS = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


class StripeEventOutcome(str, Enum):
    MUTATED = "mutated"
    IGNORED = "ignored"


class CustomerNotMappedError(LookupError):
    """No ledger row is linked to the event's Stripe customer."""


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    return _STATUS_MAP.get(stripe_status or "", SubscriptionStatus.INACTIVE)


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _period_end(subscription: Dict[str, Any]):
    if subscription.get("current_period_end"):
        return parse_epoch_seconds(subscription["current_period_end"])
    items = (subscription.get("items") or {}).get("data") or []
    if items and items[0].get("current_period_end"):
        return parse_epoch_seconds(items[0]["current_period_end"])
    return None


class StripeService:
    """Maps Stripe subscription lifecycle events and trial setup onto the ledger."""

    def __init__(
        self,
        ledger: SubscriptionLedger,
        users: UserRepository,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        trial_days: int = 7,
    ) -> None:
        self._ledger = ledger
        self._users = users
        self._webhook_secret = webhook_secret
        self._trial_days = trial_days
        if secret_key:
            stripe.api_key = secret_key

    # Webhooks -----------------------------------------------------------
    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify the webhook signature and decode the event.

        Raises:
            RuntimeError: If no webhook secret is configured
            ValueError: If the payload cannot be decoded
            stripe.SignatureVerificationError: If the signature does not match
        """
        if not self._webhook_secret:
            raise RuntimeError("Missing required environment variable: STRIPE_WEBHOOK_SECRET")
        stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
        return json.loads(payload)

    def handle_event(self, event: Dict[str, Any]) -> StripeEventOutcome:
        """
        Apply a verified Stripe event.

        Raises:
            CustomerNotMappedError: If the event's customer has no ledger row
        """
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        if event_type in SUBSCRIPTION_EVENTS:
            status = (
                SubscriptionStatus.INACTIVE
                if event_type == "customer.subscription.deleted"
                else map_stripe_status(data.get("status"))
            )
            update = SnapshotUpdate(
                stripe_subscription_id=data.get("id"),
                status=status,
                entitlement_status=_ENTITLEMENT_MAP[status],
                trial_end=parse_epoch_seconds(data.get("trial_end")),
                current_period_end=_period_end(data),
            )
            self._apply_to_customer(data.get("customer"), update, event_type)
            return StripeEventOutcome.MUTATED

        if event_type == "invoice.payment_failed":
            update = SnapshotUpdate(
                status=SubscriptionStatus.PAST_DUE,
                entitlement_status=EntitlementStatus.BILLING_ISSUE,
            )
            self._apply_to_customer(data.get("customer"), update, event_type)
            return StripeEventOutcome.MUTATED

        if event_type == "checkout.session.completed" and data.get("mode") == "subscription":
            return self._link_checkout(data)

        logger.info("Ignoring Stripe event type %s", event_type)
        return StripeEventOutcome.IGNORED

    def _apply_to_customer(
        self, customer_id: Optional[str], update: SnapshotUpdate, event_type: str
    ) -> SubscriptionSnapshot:
        row = self._ledger.get_by_stripe_customer_id(customer_id) if customer_id else None
        if row is None:
            logger.warning("Stripe %s for unmapped customer %s", event_type, customer_id)
            raise CustomerNotMappedError(f"No user for Stripe customer {customer_id}")
        snapshot = self._ledger.upsert(row.user_id, update)
        logger.info("Applied Stripe %s to %s: status=%s", event_type, row.user_id, snapshot.status.value)
        return snapshot

    def _link_checkout(self, session: Dict[str, Any]) -> StripeEventOutcome:
        user_id = (session.get("metadata") or {}).get("user_id")
        if not user_id or not self._users.user_exists(user_id):
            logger.warning("Checkout session %s has no known user", session.get("id"))
            raise CustomerNotMappedError(f"No user for checkout session {session.get('id')}")
        try:
            self._ledger.upsert(
                user_id,
                SnapshotUpdate(
                    stripe_customer_id=session.get("customer"),
                    stripe_subscription_id=session.get("subscription"),
                ),
            )
        except ForeignKeyViolationError as exc:
            raise CustomerNotMappedError(str(exc)) from exc
        return StripeEventOutcome.MUTATED

    # Trial setup --------------------------------------------------------
    def complete_trial_setup(
        self, user_id: str, session_id: str, price_id: Optional[str] = None
    ) -> SubscriptionSnapshot:
        """
        Turn a completed setup-mode checkout session into a trialing subscription.

        Args:
            user_id: Authenticated user id
            session_id: Stripe checkout session id from the setup step
            price_id: Stripe price id; falls back to the session metadata

        Returns:
            Updated ledger snapshot

        Raises:
            ValueError: If the session is missing, incomplete or unusable
            PermissionError: If the session belongs to another user
            stripe.StripeError: If a Stripe API call fails
        """
        if not session_id:
            raise ValueError("Missing session_id")

        try:
            session = _as_dict(
                stripe.checkout.Session.retrieve(session_id, expand=["setup_intent"])
            )
        except stripe.InvalidRequestError as exc:
            raise ValueError(f"Invalid checkout session: {session_id}") from exc

        metadata = session.get("metadata") or {}
        if metadata.get("user_id") and metadata["user_id"] != user_id:
            raise PermissionError("Checkout session belongs to another user")
        if session.get("status") != "complete":
            raise ValueError("Checkout session is not complete")

        customer_id = session.get("customer")
        setup_intent = session.get("setup_intent")
        if isinstance(setup_intent, str):
            setup_intent = _as_dict(stripe.SetupIntent.retrieve(setup_intent))
        payment_method = (setup_intent or {}).get("payment_method")
        if not customer_id or not payment_method:
            raise ValueError("Checkout session has no customer or payment method")

        price = price_id or metadata.get("price_id")
        if not price:
            raise ValueError("Missing price_id")

        try:
            stripe.PaymentMethod.attach(payment_method, customer=customer_id)
        except stripe.InvalidRequestError as exc:
            logger.info("Payment method %s not attached: %s", payment_method, exc)
        stripe.Customer.modify(
            customer_id,
            invoice_settings={"default_payment_method": payment_method},
        )

        subscription = _as_dict(
            stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price}],
                trial_period_days=self._trial_days,
                default_payment_method=payment_method,
                metadata={"user_id": user_id},
            )
        )

        snapshot = self._ledger.upsert(
            user_id,
            SnapshotUpdate(
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription["id"],
                status=SubscriptionStatus.TRIALING,
                entitlement_status=EntitlementStatus.ACTIVE,
                trial_end=parse_epoch_seconds(subscription.get("trial_end")),
                current_period_end=_period_end(subscription),
            ),
        )
        logger.info("Trial subscription %s created for %s", subscription["id"], user_id)
        return snapshot
