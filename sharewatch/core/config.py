"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SHAREWATCH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Rule evaluation
    default_window_hours: float = Field(
        default=24,
        gt=0,
        description="Trailing window for unique IP/device conditions without window_hours",
    )
    metrics_enabled: bool = Field(
        default=True,
        description="Record Prometheus metrics for rule evaluation",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
