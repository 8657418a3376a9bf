"""RevenueCat REST client used to read a customer's entitlements."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from dailydev.domain.errors import ProviderUnavailableError
from dailydev.domain.models.entitlement import (
    PERIOD_NORMAL,
    CustomerInfo,
    EntitlementInfo,
)
from dailydev.domain.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class RevenueCatClient:
    """Fetches subscriber state from the RevenueCat v1 API."""

    BASE_URL = "https://api.revenuecat.com/v1"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def get_customer_info(self, app_user_id: str) -> CustomerInfo:
        """
        Fetch the subscriber and map its entitlements.

        Raises:
            ProviderUnavailableError: If the API key is missing, the request
                fails or RevenueCat answers with a non-200 status.
        """
        if not self._api_key:
            raise ProviderUnavailableError("REVENUECAT_API_KEY is not configured")

        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(
                    f"/subscribers/{app_user_id}", headers=self._get_headers()
                )
            except httpx.TimeoutException as exc:
                raise ProviderUnavailableError(
                    f"RevenueCat timed out for subscriber {app_user_id}"
                ) from exc
            except httpx.HTTPError as exc:
                raise ProviderUnavailableError(f"RevenueCat request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(
                "RevenueCat API returned status %d for subscriber %s: %s",
                response.status_code,
                app_user_id,
                response.text[:200],
            )
            raise ProviderUnavailableError(
                f"RevenueCat returned status {response.status_code}"
            )

        subscriber = response.json().get("subscriber") or {}
        return parse_subscriber(app_user_id, subscriber)


def parse_subscriber(
    app_user_id: str, subscriber: Dict[str, Any], now: Optional[datetime] = None
) -> CustomerInfo:
    """Map a RevenueCat ``subscriber`` object to :class:`CustomerInfo`."""
    now = now or utc_now()
    subscriptions = subscriber.get("subscriptions") or {}
    entitlements: Dict[str, EntitlementInfo] = {}

    for identifier, payload in (subscriber.get("entitlements") or {}).items():
        product_id = payload.get("product_identifier")
        product = subscriptions.get(product_id) or {}
        expires_at = parse_timestamp(payload.get("expires_date"))
        is_active = expires_at is None or expires_at > now
        will_renew = (
            expires_at is not None
            and product.get("unsubscribe_detected_at") is None
            and product.get("billing_issues_detected_at") is None
        )
        entitlements[identifier] = EntitlementInfo(
            identifier=identifier,
            is_active=is_active,
            will_renew=will_renew,
            period_type=(product.get("period_type") or PERIOD_NORMAL).lower(),
            expires_at=expires_at,
            product_identifier=product_id,
        )

    return CustomerInfo(
        original_app_user_id=subscriber.get("original_app_user_id") or app_user_id,
        entitlements=entitlements,
        management_url=subscriber.get("management_url"),
    )
