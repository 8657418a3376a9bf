from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.auth_service import AuthService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..infrastructure.repositories.subscription_repository import SubscriptionRepository
from ..presentation.api.routers import progress as progress_router
from ..presentation.api.routers import subscription as subscription_router
from ..presentation.api.routers import trial_setup as trial_setup_router
from ..presentation.api.routers import webhooks as webhooks_router
from ..services.progress_service import ProgressService
from ..services.revenuecat import RevenueCatClient
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_normalizer import RevenueCatWebhookService

logger = logging.getLogger(__name__)


def create_application(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="The Daily Dev API", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhooks_router.router)
    app.include_router(trial_setup_router.router)
    app.include_router(subscription_router.router)
    app.include_router(progress_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "revenuecat": bool(container.settings.revenuecat_api_key),
            "stripe": bool(container.settings.stripe_secret_key),
        }

    return app


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        # users table must exist before the ledger's foreign key references it.
        persistence = SQLitePersistence(settings.database_path)
        subscription_repository = SubscriptionRepository(settings.database_path)
        progress_service = ProgressService(persistence)
        revenuecat_client = RevenueCatClient(
            settings.revenuecat_api_key,
            timeout=float(settings.provider_timeout_seconds),
        )
        if not settings.revenuecat_api_key:
            logger.warning("REVENUECAT_API_KEY not set; client sync will be skipped")

        container = ApplicationContainer(
            settings=settings,
            persistence=persistence,
            subscription_repository=subscription_repository,
            revenuecat_client=revenuecat_client,
            revenuecat_webhook_service=RevenueCatWebhookService(subscription_repository, persistence),
            stripe_service=StripeService(
                subscription_repository,
                persistence,
                secret_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                trial_days=settings.stripe_trial_days,
            ),
            progress_service=progress_service,
            subscription_service=SubscriptionService(
                subscription_repository,
                persistence,
                progress_service,
                free_day=settings.free_weekday,
            ),
            auth_service=AuthService(
                settings.supabase_jwt_secret,
                audience=settings.supabase_jwt_audience,
            ),
        )

        app.state.container = container  # type: ignore[attr-defined]
        logger.info("Database ready at %s", settings.database_path)

        try:
            yield
        finally:
            persistence.close()

    return lifespan
