"""
Configuration management for Kader-Planung.

Uses Pydantic settings for type-safe configuration with environment variable support.
All settings can be overridden via environment variables prefixed with
``KADER_PLANUNG_`` (e.g. ``KADER_PLANUNG_API_BASE_URL``) or a local ``.env`` file.
Command-line flags take precedence over both.
"""

import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_concurrency() -> int:
    return os.cpu_count() or 4


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="KADER_PLANUNG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Remote API
    # ==========================================================================
    api_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the Portal64 REST API",
    )
    request_timeout: float = Field(default=30.0, ge=1, description="Request timeout (seconds)")
    requests_per_minute: int = Field(default=600, ge=1)
    max_retries: int = Field(default=3, ge=1, le=10)
    page_size: int = Field(default=500, ge=1, le=1000, description="Batch size for paginated listings")

    # ==========================================================================
    # Processing
    # ==========================================================================
    concurrency: int = Field(default_factory=_default_concurrency, ge=1)
    min_sample_size: int = Field(
        default=100,
        ge=1,
        description="Minimum players per age/gender group before percentiles are published",
    )
    checkpoint_interval: int = Field(
        default=10,
        ge=1,
        description="Save the checkpoint after this many clubs",
    )

    # ==========================================================================
    # Output
    # ==========================================================================
    output_dir: str = "."
    output_format: str = Field(default="csv", description="csv, json, excel")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
