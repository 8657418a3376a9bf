"""Purchase provider webhook endpoints."""

import hmac
import json
import logging
from typing import Any, Dict

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from ....core.config import Settings
from ....core.dependencies import (
    get_revenuecat_webhook_service,
    get_settings,
    get_stripe_service,
)
from ....domain.errors import LedgerUnavailableError
from ....services.stripe_service import CustomerNotMappedError, StripeService
from ....services.webhook_normalizer import RevenueCatWebhookService, WebhookOutcome
from ..schemas.subscription_schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/revenuecat-webhook", response_model=WebhookAck)
async def revenuecat_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    webhook_service: RevenueCatWebhookService = Depends(get_revenuecat_webhook_service),
) -> WebhookAck:
    """Apply a RevenueCat event to the subscription ledger."""
    secret = settings.revenuecat_webhook_secret
    if not secret:
        logger.error("REVENUECAT_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    authorization = request.headers.get("authorization", "")
    if not hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        body: Dict[str, Any] = json.loads(await request.body())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from exc

    event = body.get("event") if isinstance(body, dict) else None
    if not isinstance(event, dict):
        logger.info("RevenueCat webhook without event object")
        return WebhookAck(outcome=WebhookOutcome.IGNORED_UNKNOWN_EVENT.value)

    try:
        outcome = webhook_service.handle_event(event)
    except ValueError as exc:
        logger.warning("Rejected malformed RevenueCat %s: %s", event.get("type"), exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LedgerUnavailableError as exc:
        logger.error("Failed to apply RevenueCat %s: %s", event.get("type"), exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error",
        ) from exc
    return WebhookAck(outcome=outcome.value)


@router.post("/stripe-webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> Dict[str, Any]:
    """Handle Stripe webhook events."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = stripe_service.construct_event(payload, sig_header)
    except RuntimeError as exc:
        logger.error("Stripe webhook rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        ) from exc
    except stripe.SignatureVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from exc

    try:
        outcome = stripe_service.handle_event(event)
    except CustomerNotMappedError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except LedgerUnavailableError as exc:
        logger.error("Failed to apply Stripe %s: %s", event.get("type"), exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error",
        ) from exc

    return {"received": True, "outcome": outcome.value}
