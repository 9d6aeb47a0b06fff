"""
Configuration management for precompress.

Uses pydantic-settings to load configuration from environment variables
(prefixed with ``PRECOMPRESS_``) and .env files.
"""

import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import List

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(ValueError):
    """Raised when run configuration cannot be used (bad pattern, mtime, sizes)."""


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Run Configuration
    mtime: datetime = datetime(1970, 1, 1, tzinfo=timezone.utc)
    concurrency: int = os.cpu_count() or 1
    ignore_patterns: List[str] = []
    refresh_stale: bool = False

    # Worker Configuration
    queue_factor: int = 10
    buffer_size: int = 32 * 1024

    # Logging Configuration
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="PRECOMPRESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("concurrency", "queue_factor", "buffer_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises:
        ConfigError: If the environment or .env file holds invalid values
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(f"invalid settings: {e}") from e
