"""Application configuration."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    TimeTiles import settings.

    Environment variables will be loaded and validated using Pydantic.
    """

    app_name: str = "TimeTiles"
    version: str = "0.1.0"

    # Data Store Settings
    DATA_STORE_BACKEND: Literal["memory", "redis"] = "memory"
    DATA_STORE_PREFIX: str = "timetiles"
    REDIS_URL: str = "redis://localhost:6379"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # Import Settings
    IMPORT_BATCH_SIZE: int = Field(default=100, gt=0)
    UPLOAD_DIR_IMPORT_FILES: str = "uploads/import-files"

    # Geocoding Settings
    GOOGLE_MAPS_API_KEY: str | None = None
    NOMINATIM_USER_AGENT: str = "timetiles"
    NOMINATIM_DOMAIN: str = "nominatim.openstreetmap.org"
    GEOCODING_TIMEOUT: int = 10
    GEOCODING_MIN_CONFIDENCE: float = 0.3
    GEOCODING_BATCH_CONCURRENCY: int = Field(default=10, gt=0)

    # Provider rate limits in requests per second
    GOOGLE_RATE_LIMIT: float = 50.0
    NOMINATIM_RATE_LIMIT: float = 1.0

    # Location Cache Settings
    GEOCODING_CACHE_ENABLED: bool = True
    GEOCODING_CACHE_STALE_DAYS: int = Field(default=90, ge=0)
    GEOCODING_CACHE_MIN_HITS: int = Field(default=3, ge=0)  # popular at or above

    # Retry Settings
    RETRY_MAX_RETRIES: int = Field(default=3, ge=0)
    RETRY_BASE_DELAY_MS: int = Field(default=30000, ge=0)  # 30 seconds
    RETRY_MAX_DELAY_MS: int = Field(default=300000, ge=0)  # 5 minutes
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=2.0, ge=1.0)
    RETRY_PENDING_BATCH_LIMIT: int = Field(default=10, gt=0)
    RECOVERY_SCAN_LIMIT: int = Field(default=100, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",  # Allow extra fields in environment
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        """Validate cross-field limits."""
        if self.RETRY_MAX_DELAY_MS < self.RETRY_BASE_DELAY_MS:
            raise ValueError("RETRY_MAX_DELAY_MS must be >= RETRY_BASE_DELAY_MS")
        if not 0.0 <= self.GEOCODING_MIN_CONFIDENCE <= 1.0:
            raise ValueError("GEOCODING_MIN_CONFIDENCE must be between 0 and 1")
        return self

    @model_validator(mode="after")
    def use_test_configs_for_testing(self) -> "Settings":
        """Use the test Redis instance when running tests."""
        import os

        if os.getenv("TESTING") == "true":
            test_redis_url = os.getenv("TEST_REDIS_URL")
            if test_redis_url:
                self.REDIS_URL = test_redis_url
        return self


# Create settings instance
settings = Settings()
