"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./hotel.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: Optional[str] = Field(default=None, description="Signing secret for staff bearer tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    service_api_key: Optional[str] = Field(default=None, description="API key for service-to-service calls")
    trusted_roles: List[str] = Field(
        default_factory=lambda: ["admin", "staff", "service"],
        description="Bearer token roles allowed to act as trusted callers",
    )
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")

    mark_paid_secret: Optional[str] = Field(default=None, description="HMAC secret for mark-paid capability tokens")
    capability_token_ttl_seconds: int = Field(default=300, description="Capability token lifetime in seconds")
    stripe_secret_key: Optional[str] = Field(default=None, description="Stripe API secret key")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe webhook endpoint signing secret")
    stripe_timeout_seconds: float = Field(default=10.0, description="Network timeout for Stripe API calls")
    webhook_tolerance_seconds: int = Field(default=300, description="Maximum accepted webhook signature age")
    default_currency: str = Field(default="usd", description="Currency used when a request omits one")

    bookings_service_port: int = 8001
    payments_service_port: int = 8002


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
