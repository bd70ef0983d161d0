"""GRC dashboard configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GrcDashConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "GRCDASH"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: str = "http://localhost:3000"

    # Database (layout persistence only)
    database_url: str = "sqlite+aiosqlite:///./grcdash.db"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Temporal classifiers
    due_soon_horizon_days: int = 30
    review_due_window_days: int = 7
    default_review_frequency_days: int = 90
    metric_stale_days: int = 30

    # Insight list caps
    insight_list_cap: int = 5
    urgent_acceptance_cap: int = 3

    @field_validator(
        "due_soon_horizon_days",
        "review_due_window_days",
        "default_review_frequency_days",
        "metric_stale_days",
        "insight_list_cap",
        "urgent_acceptance_cap",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> GrcDashConfig:
    """Factory function to create config instance."""
    return GrcDashConfig()
