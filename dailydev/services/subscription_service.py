"""Service for reading and provisioning subscription ledger rows."""

import logging
from datetime import date
from typing import Any, Dict, Optional, Tuple

from dailydev.domain.models.subscription import SubscriptionSnapshot
from dailydev.domain.ports.persistence import SubscriptionLedger, UserRepository
from dailydev.services.access_policy import FREE_DAY, can_access
from dailydev.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

NAME_METADATA_KEYS = ("full_name", "name", "display_name", "displayName", "fullName")


def extract_name_from_metadata(
    user_metadata: Optional[Dict[str, Any]],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Split the identity provider's display name into first and last name.

    Args:
        user_metadata: ``user_metadata`` claim of the user's token

    Returns:
        (first_name, last_name); either may be None
    """
    if not user_metadata:
        return None, None

    for key in NAME_METADATA_KEYS:
        value = user_metadata.get(key)
        if isinstance(value, str) and value.strip():
            first, _, rest = value.strip().partition(" ")
            return first, rest.strip() or None

    return None, None


class SubscriptionService:
    """Service for managing user subscriptions."""

    def __init__(
        self,
        subscription_repository: SubscriptionLedger,
        user_repository: UserRepository,
        progress_service: ProgressService,
        free_day: int = FREE_DAY,
    ):
        self.subscription_repository = subscription_repository
        self.user_repository = user_repository
        self.progress_service = progress_service
        self.free_day = free_day

    def get_user_subscription(self, user_id: str) -> Optional[SubscriptionSnapshot]:
        return self.subscription_repository.get_by_user_id(user_id)

    def ensure_user_subscription_record(
        self,
        user_id: str,
        user_metadata: Optional[Dict[str, Any]] = None,
        email: Optional[str] = None,
    ) -> SubscriptionSnapshot:
        """
        Make sure the user and their ledger row exist, back-filling empty names.

        Args:
            user_id: Identity-provider user id
            user_metadata: ``user_metadata`` claim used for the name
            email: Account email stored with a newly mirrored user
        """
        if not self.user_repository.user_exists(user_id):
            self.user_repository.create_user(user_id, email)
            logger.info("Registered user %s", user_id)

        first_name, last_name = extract_name_from_metadata(user_metadata)
        snapshot = self.subscription_repository.ensure_record(user_id, first_name, last_name)
        logger.info("Subscription record ensured for %s", user_id)
        return snapshot

    def can_access_questions(self, user_id: str, today: date) -> bool:
        snapshot = self.get_user_subscription(user_id)
        if snapshot is not None and snapshot.is_active():
            return True
        return can_access(
            snapshot,
            self.progress_service.has_answered_any(user_id),
            today,
            free_day=self.free_day,
        )
