"""API router for the signed-in user's subscription."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends

from dailydev.core.dependencies import get_subscription_service
from dailydev.domain.models import AuthenticatedUser
from dailydev.presentation.api.dependencies import require_user
from dailydev.presentation.api.schemas.subscription_schemas import (
    AccessResponse,
    SubscriptionResponse,
)
from dailydev.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/current", response_model=Optional[SubscriptionResponse])
async def get_current_subscription(
    user: AuthenticatedUser = Depends(require_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Optional[SubscriptionResponse]:
    """Get the user's ledger row, or null if none exists yet."""
    snapshot = subscription_service.get_user_subscription(user.id)
    if not snapshot:
        return None
    return SubscriptionResponse.from_snapshot(snapshot)


@router.get("/access", response_model=AccessResponse)
async def get_question_access(
    today: Optional[date] = None,
    user: AuthenticatedUser = Depends(require_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> AccessResponse:
    """Whether the user may open today's question."""
    allowed = subscription_service.can_access_questions(user.id, today or date.today())
    return AccessResponse(can_access=allowed, free_weekday=subscription_service.free_day)


@router.post("/record", response_model=SubscriptionResponse)
async def ensure_subscription_record(
    user: AuthenticatedUser = Depends(require_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Create the user's ledger row on first sign-in."""
    snapshot = subscription_service.ensure_user_subscription_record(
        user.id, user.user_metadata, email=user.email
    )
    return SubscriptionResponse.from_snapshot(snapshot)
