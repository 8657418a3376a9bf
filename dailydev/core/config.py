import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/app.db")).resolve()
        self.supabase_jwt_secret = self._get("SUPABASE_JWT_SECRET")
        self.supabase_jwt_audience = os.getenv("SUPABASE_JWT_AUDIENCE") or None
        self.revenuecat_webhook_secret = os.getenv("REVENUECAT_WEBHOOK_SECRET")
        self.revenuecat_api_key = os.getenv("REVENUECAT_API_KEY")
        self.revenuecat_entitlement_id = os.getenv("REVENUECAT_ENTITLEMENT_ID", "The Daily Dev Pro")
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.stripe_trial_days = self._get_int("STRIPE_TRIAL_DAYS", default=7)
        self.subscription_cache_seconds = self._get_int("SUBSCRIPTION_CACHE_SECONDS", default=300)
        self.provider_timeout_seconds = self._get_int("PROVIDER_TIMEOUT_SECONDS", default=15)
        self.free_weekday = self._get_int("FREE_WEEKDAY", default=4)
        if not 0 <= self.free_weekday <= 6:
            raise RuntimeError("Environment variable FREE_WEEKDAY must be between 0 and 6")
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc
