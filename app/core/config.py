"""
Core application configuration using Pydantic Settings.

All environment variables are loaded here and validated.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App Configuration
    APP_NAME: str = "StreamWatch Sentinel"
    APP_VERSION: str = "0.1.0"
    APP_URL: str = "http://localhost:8000"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./streamwatch.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None

    # Sentry Monitoring
    SENTRY_DSN: Optional[str] = None

    # Geo cache
    GEO_CACHE_TTL_DAYS: int = 30

    # Household auto-learning
    HOUSEHOLD_AUTO_LEARN: bool = True
    HOUSEHOLD_MIN_SESSIONS: int = 10

    # Violation dedup and trust penalties
    VIOLATION_COOLDOWN_MINUTES: int = 15
    TRUST_DECREMENT_CRITICAL: int = 20
    TRUST_DECREMENT_WARNING: int = 10
    TRUST_DECREMENT_INFO: int = 5

    # Notification delivery
    NOTIFY_TIMEOUT_SECONDS: float = 30.0
    NOTIFY_MAX_RESPONSE_BYTES: int = 1 << 20
    PUSHOVER_API_URL: str = "https://api.pushover.net/1/messages.json"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Set Celery URLs to Redis if not explicitly set
        if not self.CELERY_BROKER_URL:
            self.CELERY_BROKER_URL = self.REDIS_URL
        if not self.CELERY_RESULT_BACKEND:
            self.CELERY_RESULT_BACKEND = self.REDIS_URL

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        """SQLite needs different engine options (no connection pool sizing)."""
        return self.DATABASE_URL.startswith("sqlite")


# Global settings instance
settings = Settings()


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
