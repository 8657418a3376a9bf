"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from dailydev.domain.models.subscription import SubscriptionSnapshot


class SubscriptionResponse(BaseModel):
    """Response schema for subscription data."""

    user_id: str
    status: str
    entitlement_status: Optional[str] = None
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    is_in_trial: bool
    access_message: str

    @classmethod
    def from_snapshot(cls, snapshot: SubscriptionSnapshot) -> "SubscriptionResponse":
        return cls(
            user_id=snapshot.user_id,
            status=snapshot.status.value,
            entitlement_status=(
                snapshot.entitlement_status.value if snapshot.entitlement_status else None
            ),
            trial_end=snapshot.trial_end,
            current_period_end=snapshot.current_period_end,
            stripe_customer_id=snapshot.stripe_customer_id,
            stripe_subscription_id=snapshot.stripe_subscription_id,
            first_name=snapshot.first_name,
            last_name=snapshot.last_name,
            is_active=snapshot.is_active(),
            is_in_trial=snapshot.is_in_trial(),
            access_message=snapshot.access_status_message(),
        )


class AccessResponse(BaseModel):
    can_access: bool
    free_weekday: int


class CompleteTrialSetupRequest(BaseModel):
    """Request schema for turning a setup checkout session into a trial."""

    user_id: str
    session_id: str
    price_id: Optional[str] = None


class CompleteTrialSetupResponse(BaseModel):
    success: bool
    subscription_id: Optional[str]
    status: str
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
