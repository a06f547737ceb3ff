"""Runtime configuration.

Values are read from the environment (and a local .env file). Every setting
has a default that works against the public upstream endpoints.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # iRail (SNCB open data)
    irail_base_url: str = Field(default="https://api.irail.be/v1", alias="IRAIL_BASE_URL")
    irail_lang: str = Field(default="fr", alias="IRAIL_LANG")
    irail_requests_per_second: float = Field(
        default=3.0,
        alias="IRAIL_REQUESTS_PER_SECOND",
        gt=0,
        description="iRail allows 3 requests/second per client.",
    )

    # Natural-language retrieval (Gemini)
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "gemini_api_key"),
    )
    gemini_model: str = Field(default="gemini-3-flash-preview", alias="GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )

    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS", gt=0)

    # Result cache
    cache_ttl_seconds: float = Field(default=45.0, alias="CACHE_TTL_SECONDS", ge=1, le=3600)
    cache_max_entries: int = Field(default=512, alias="CACHE_MAX_ENTRIES", ge=1)

    # Retry on upstream rate limiting
    retry_max_attempts: int = Field(default=2, alias="RETRY_MAX_ATTEMPTS", ge=0)
    retry_initial_delay_seconds: float = Field(
        default=1.0, alias="RETRY_INITIAL_DELAY_SECONDS", ge=0
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
