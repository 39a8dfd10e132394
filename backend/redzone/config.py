"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Redzone Fantasy"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: str = Field(default="INFO")
    log_file: str | None = Field(
        default="logs/redzone.log",
        description="JSON log file; also tailed by the cron status endpoint",
    )

    # Database. Left unset, ingestion refuses to run and queries return empty pages.
    database_url: str | None = Field(
        default=None,
        description="Async database URL (SQLAlchemy format)",
    )

    # Sources
    sources_file: str | None = Field(
        default=None,
        description="Optional JSON file replacing the built-in source list",
    )
    youtube_api_key: str | None = Field(default=None)
    youtube_api_base_url: str = Field(default="https://www.googleapis.com/youtube/v3")

    # Fetching
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = Field(default="Redzone Fantasy Content Aggregator 1.0")
    max_concurrent_sources: int = Field(default=4, ge=1)

    # Scheduled trigger
    cron_secret: str | None = Field(default=None)
    scheduler_enabled: bool = Field(default=False)
    schedule_cron: str = Field(
        default="0 22 * * *",
        description="Crontab expression (UTC) for the scheduled ingestion run",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
    )

    # Pagination
    default_page_size: int = Field(default=20, ge=1, le=50)
    max_page_size: int = Field(default=50, ge=1, le=50)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
