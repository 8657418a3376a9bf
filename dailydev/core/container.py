from dataclasses import dataclass

from ..application.services.auth_service import AuthService
from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..infrastructure.repositories.subscription_repository import SubscriptionRepository
from ..services.progress_service import ProgressService
from ..services.revenuecat import RevenueCatClient
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_normalizer import RevenueCatWebhookService


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    subscription_repository: SubscriptionRepository
    revenuecat_client: RevenueCatClient
    revenuecat_webhook_service: RevenueCatWebhookService
    stripe_service: StripeService
    progress_service: ProgressService
    subscription_service: SubscriptionService
    auth_service: AuthService
