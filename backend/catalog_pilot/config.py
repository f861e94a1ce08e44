"""
Configuration settings for Catalog Pilot
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App identification
    app_name: str = "Catalog Pilot"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str

    # BigCommerce API
    bigcommerce_api_url: str = "https://api.bigcommerce.com"
    bigcommerce_timeout_seconds: float = 60.0

    # Catalog sync
    sync_page_size: int = 50

    # Work order execution
    update_batch_size: int = 10
    update_batch_delay_seconds: float = 1.0
    scheduler_enabled: bool = True

    # Redis (for rate limiting and sync cancellation flags)
    redis_url: str = "redis://localhost:6379"

    # Security
    encryption_key: str
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    trust_identity_headers: bool = False

    # App URLs
    app_url: str = "http://localhost:5000"

    # Stripe billing
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_starter: str = ""
    stripe_price_premium: str = ""

    # Team invitations
    invitation_ttl_days: int = 7

    # Rate limiting
    rate_limit_per_minute: int = 120

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def async_database_url(self) -> str:
        """Database URL converted to an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite:///") or url == "sqlite://":
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
