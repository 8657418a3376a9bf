"""Trial completion after the Stripe setup checkout."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status

from ....core.dependencies import get_stripe_service
from ....domain.errors import ForeignKeyViolationError
from ....domain.models import AuthenticatedUser
from ....services.stripe_service import StripeService
from ...api.dependencies import require_user
from ...api.schemas.subscription_schemas import (
    CompleteTrialSetupRequest,
    CompleteTrialSetupResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["trial"])


@router.post("/complete-trial-setup", response_model=CompleteTrialSetupResponse)
async def complete_trial_setup(
    payload: CompleteTrialSetupRequest,
    user: AuthenticatedUser = Depends(require_user),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CompleteTrialSetupResponse:
    """Create the trialing subscription for a completed setup session."""
    if payload.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        snapshot = stripe_service.complete_trial_setup(
            user_id=user.id,
            session_id=payload.session_id,
            price_id=payload.price_id,
        )
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except (ValueError, ForeignKeyViolationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except stripe.StripeError as exc:
        logger.error("Stripe error completing trial for %s: %s", user.id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete trial setup",
        ) from exc

    return CompleteTrialSetupResponse(
        success=True,
        subscription_id=snapshot.stripe_subscription_id,
        status=snapshot.status.value,
        trial_end=snapshot.trial_end,
        current_period_end=snapshot.current_period_end,
    )
