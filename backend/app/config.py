"""Configuration settings for the Nimmit backend."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

from nimmit.config import NimmitConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Persistence
    storage_backend: Literal["supabase", "memory"] = "supabase"
    supabase_url: str | None = None
    supabase_secret_key: str | None = None  # Backend/admin access

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Stripe Connect
    stripe_secret_key: str | None = None
    stripe_api_base: str = "https://api.stripe.com/v1"
    stripe_timeout_seconds: float = 30.0

    # Shared secret for the scheduler calling /admin/scheduled
    cron_secret: str | None = None

    # Payouts
    payout_currency: str = "usd"

    # App
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    def nimmit_config(self) -> NimmitConfig:
        """Domain configuration with the deployment overrides applied."""
        return NimmitConfig(payout_currency=self.payout_currency)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
