from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from .subscription import SnapshotUpdate, SubscriptionStatus

PERIOD_TRIAL = "trial"
PERIOD_NORMAL = "normal"
PERIOD_INTRO = "intro"


@dataclass(slots=True)
class EntitlementInfo:
    identifier: str
    is_active: bool
    will_renew: bool
    period_type: str = PERIOD_NORMAL
    expires_at: Optional[datetime] = None
    product_identifier: Optional[str] = None


@dataclass(slots=True)
class CustomerInfo:
    original_app_user_id: str
    entitlements: Dict[str, EntitlementInfo] = field(default_factory=dict)
    management_url: Optional[str] = None


@dataclass(slots=True)
class ProviderStatus:
    """Status derived from the purchase provider's view of an entitlement."""

    status: SubscriptionStatus
    is_in_trial: bool = False
    trial_end: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    def to_update(self, revenuecat_user_id: Optional[str] = None) -> SnapshotUpdate:
        # Transaction ids are written by provider webhooks only.
        return SnapshotUpdate(
            status=self.status,
            trial_end=self.trial_end,
            current_period_end=self.current_period_end,
            revenuecat_user_id=revenuecat_user_id,
        )
