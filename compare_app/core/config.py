"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    # Database
    database_url: str = "sqlite:///./comparisons.db"

    # Generative provider
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    provider_timeout_seconds: float = 30.0

    # Outbound call throttling
    rate_limit_per_minute: int = 60
    rate_limit_per_day: int = 1500

    # Result cache
    cache_ttl_seconds: int = 600

    # Conversation handling
    history_window: int = 5
    chat_fallback_enabled: bool = False
    recent_limit: int = 10

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Sentry
    sentry_dsn: Optional[str] = None

    # Environment
    environment: str = "development"

    # Application
    app_name: str = "Product Comparison API"
    app_version: str = "1.0.0"
    debug: bool = False

    @field_validator("rate_limit_per_minute", "rate_limit_per_day", "cache_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ceilings and TTLs must be positive."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
