"""Pytest configuration and fixtures."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from dailydev.core.app_factory import create_application
from dailydev.domain.models import (
    CustomerInfo,
    EntitlementInfo,
    SubscriptionSnapshot,
    SubscriptionStatus,
)
from dailydev.infrastructure.persistence.sqlite import SQLitePersistence
from dailydev.infrastructure.repositories.subscription_repository import SubscriptionRepository

JWT_SECRET = "test-jwt-secret"
JWT_AUDIENCE = "authenticated"
REVENUECAT_WEBHOOK_SECRET = "rc-webhook-secret"
STRIPE_WEBHOOK_SECRET = "whsec_test"
ENTITLEMENT_ID = "The Daily Dev Pro"

USER_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"
OTHER_USER_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Environment for a fully configured application backed by a temp database."""
    values = {
        "DATABASE_PATH": str(tmp_path / "app.db"),
        "SUPABASE_JWT_SECRET": JWT_SECRET,
        "SUPABASE_JWT_AUDIENCE": JWT_AUDIENCE,
        "REVENUECAT_WEBHOOK_SECRET": REVENUECAT_WEBHOOK_SECRET,
        "REVENUECAT_API_KEY": "",
        "REVENUECAT_ENTITLEMENT_ID": ENTITLEMENT_ID,
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": STRIPE_WEBHOOK_SECRET,
        "STRIPE_TRIAL_DAYS": "7",
        "LOG_LEVEL": "DEBUG",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


@pytest.fixture
def client(env):
    """Create test client with the lifespan (and container) running."""
    with TestClient(create_application()) as test_client:
        yield test_client


@pytest.fixture
def container(client):
    return client.app.state.container


@pytest.fixture
def make_token():
    def _make_token(
        sub: str = USER_ID,
        secret: str = JWT_SECRET,
        audience: str = JWT_AUDIENCE,
        expires_in: int = 3600,
        **claims,
    ) -> str:
        now = int(time.time())
        payload = {"sub": sub, "aud": audience, "iat": now, "exp": now + expires_in, **claims}
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


# ============================================================================
# Persistence
# ============================================================================


@pytest.fixture
def persistence(tmp_path):
    store = SQLitePersistence(tmp_path / "ledger.db")
    yield store
    store.close()


@pytest.fixture
def ledger(tmp_path, persistence):
    return SubscriptionRepository(tmp_path / "ledger.db")


@pytest.fixture
def user(persistence):
    return persistence.create_user(USER_ID, "dev@example.com")


# ============================================================================
# Reconciliation fakes
# ============================================================================


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLedgerClient:
    """In-memory async ledger; ``gate`` holds reads until set."""

    def __init__(self, snapshot: Optional[SubscriptionSnapshot] = None):
        self.snapshot = snapshot
        self.fetch_calls = 0
        self.sync_calls = []
        self.gate: Optional[asyncio.Event] = None
        self.fetch_error: Optional[Exception] = None
        self.sync_error: Optional[Exception] = None

    async def fetch_snapshot(self, user_id):
        self.fetch_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.snapshot

    async def sync_provider_status(self, user_id, update, observed_at):
        self.sync_calls.append((user_id, update, observed_at))
        if self.sync_error is not None:
            raise self.sync_error
        return True


class FakeProvider:
    def __init__(self, info: Optional[CustomerInfo] = None):
        self.info = info or CustomerInfo(original_app_user_id=USER_ID)
        self.calls = 0
        self.error: Optional[Exception] = None

    async def get_customer_info(self, app_user_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.info


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_ledger():
    return FakeLedgerClient(
        SubscriptionSnapshot(user_id=USER_ID, status=SubscriptionStatus.ACTIVE)
    )


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def active_entitlement():
    def _entitlement(
        identifier: str = ENTITLEMENT_ID,
        period_type: str = "normal",
        will_renew: bool = True,
    ) -> EntitlementInfo:
        return EntitlementInfo(
            identifier=identifier,
            is_active=True,
            will_renew=will_renew,
            period_type=period_type,
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
            product_identifier="dailydev_monthly",
        )

    return _entitlement
