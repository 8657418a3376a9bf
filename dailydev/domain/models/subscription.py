"""Subscription ledger domain model shared by webhooks and client reconciliation."""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SubscriptionStatus(str, Enum):
    INACTIVE = "inactive"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    PAUSED = "paused"


class EntitlementStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    BILLING_ISSUE = "billing_issue"
    PAUSED = "paused"


ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


class SubscriptionSnapshot:
    """
    One user's row of the subscription ledger.

    Attributes:
        user_id: Internal user identifier (one row per user)
        status: Authoritative lifecycle state
        entitlement_status: Provider entitlement state, may lag ``status``
        trial_end: End of the trial; kept after the trial for display
        current_period_end: Next renewal or expiry boundary
        revenuecat_user_id: RevenueCat app user id linked to this user
        revenuecat_subscription_id: Latest store transaction id (webhook only)
        original_transaction_id: First store transaction id (webhook only)
        stripe_customer_id: Stripe customer id
        stripe_subscription_id: Stripe subscription id
        first_name: Given name taken from the identity provider
        last_name: Family name taken from the identity provider
        created_at: Row creation timestamp
        updated_at: Last write timestamp
    """

    def __init__(
        self,
        user_id: str,
        status: SubscriptionStatus = SubscriptionStatus.INACTIVE,
        entitlement_status: Optional[EntitlementStatus] = None,
        trial_end: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        revenuecat_user_id: Optional[str] = None,
        revenuecat_subscription_id: Optional[str] = None,
        original_transaction_id: Optional[str] = None,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.user_id = user_id
        self.status = SubscriptionStatus(status)
        self.entitlement_status = EntitlementStatus(entitlement_status) if entitlement_status else None
        self.trial_end = trial_end
        self.current_period_end = current_period_end
        self.revenuecat_user_id = revenuecat_user_id
        self.revenuecat_subscription_id = revenuecat_subscription_id
        self.original_transaction_id = original_transaction_id
        self.stripe_customer_id = stripe_customer_id
        self.stripe_subscription_id = stripe_subscription_id
        self.first_name = first_name
        self.last_name = last_name
        self.created_at = created_at or datetime.now(timezone.utc)
        self.updated_at = updated_at or self.created_at

    def is_active(self) -> bool:
        """Check whether the user currently has paid or trial access."""
        return self.status in ACCESS_STATUSES

    def is_in_trial(self, now: Optional[datetime] = None) -> bool:
        if self.status is not SubscriptionStatus.TRIALING or self.trial_end is None:
            return False
        return self.trial_end > (now or datetime.now(timezone.utc))

    @property
    def full_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else "User"

    def access_status_message(self, now: Optional[datetime] = None) -> str:
        if self.is_in_trial(now):
            return f"Free trial until {self.trial_end.strftime('%b %d, %Y')}"
        if self.status is SubscriptionStatus.ACTIVE:
            return "Active subscription"
        if self.status is SubscriptionStatus.TRIALING:
            return "Free trial active"
        if self.status is SubscriptionStatus.PAST_DUE:
            return "Payment issue - please update payment method"
        if self.status is SubscriptionStatus.PAUSED:
            return "Subscription paused"
        if self.entitlement_status is EntitlementStatus.EXPIRED:
            return "Subscription expired"
        if self.entitlement_status is EntitlementStatus.BILLING_ISSUE:
            return "Payment issue - please update payment method"
        return "Subscription required"

    def __repr__(self) -> str:
        return f"<SubscriptionSnapshot user_id={self.user_id} status={self.status.value}>"


@dataclass(slots=True)
class SnapshotUpdate:
    """Partial ledger write; ``None`` fields are left untouched by the upsert."""

    status: Optional[SubscriptionStatus] = None
    entitlement_status: Optional[EntitlementStatus] = None
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    revenuecat_user_id: Optional[str] = None
    revenuecat_subscription_id: Optional[str] = None
    original_transaction_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.changes()


# Columns that only provider webhooks may write.
TRANSACTION_FIELDS = frozenset(
    {
        "revenuecat_subscription_id",
        "original_transaction_id",
        "stripe_subscription_id",
    }
)
