"""Domain models for The Daily Dev subscription backend."""

from .entitlement import CustomerInfo, EntitlementInfo, ProviderStatus
from .progress import CategoryPerformance, DailyChallenge, ProgressRecord
from .subscription import (
    EntitlementStatus,
    SnapshotUpdate,
    SubscriptionSnapshot,
    SubscriptionStatus,
)
from .user import AuthenticatedUser, User, is_internal_user_id

__all__ = [
    "AuthenticatedUser",
    "CategoryPerformance",
    "CustomerInfo",
    "DailyChallenge",
    "EntitlementInfo",
    "EntitlementStatus",
    "ProgressRecord",
    "ProviderStatus",
    "SnapshotUpdate",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "User",
    "is_internal_user_id",
]
