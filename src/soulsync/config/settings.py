"""Configuration management for SoulSync using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Key-value store backend settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_", env_file=".env", extra="ignore")

    backend: Literal["memory", "sqlite"] = "sqlite"
    database_url: str = "sqlite:///~/.local/share/soulsync/soulsync.db"


class ProgressSettings(BaseSettings):
    """Streak and weekly goal settings."""

    model_config = SettingsConfigDict(env_prefix="PROGRESS_", env_file=".env", extra="ignore")

    default_weekly_goal: int = Field(default=3, ge=1)
    week_start: Literal["sunday", "monday"] = "sunday"


class InsightsSettings(BaseSettings):
    """Insights aggregation and refresh settings."""

    model_config = SettingsConfigDict(env_prefix="INSIGHTS_", env_file=".env", extra="ignore")

    poll_interval_seconds: float = Field(default=5.0, gt=0)
    window_days: int = Field(default=7, ge=1)


class SessionSettings(BaseSettings):
    """Guided session settings."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", env_file=".env", extra="ignore")

    # Falls back to the packaged catalog when unset
    exercise_catalog: Path | None = None


class Settings(BaseSettings):
    """Main SoulSync settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # General
    environment: Literal["development", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    timezone: str = "UTC"
    default_user_id: str = Field(default="local", alias="SOULSYNC_USER")

    # Sub-settings
    store: StoreSettings = Field(default_factory=StoreSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    insights: InsightsSettings = Field(default_factory=InsightsSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)


# Global settings instance
settings = Settings()
