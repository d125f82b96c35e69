"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from kanji_srs.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    table = settings.SRS_INTERVAL_TABLE
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_INTERVAL_TABLE: list[int] = [1, 1, 2, 4, 7, 14, 30, 60, 90, 180, 365]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Kanji SRS"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "kanjisrs"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "kanjisrs"

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def POSTGRES_URL_SYNC(self) -> str:
        """Sync PostgreSQL connection URL for migrations and scripts."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Scheduling
    # Interval table in abstract time-units, indexed by consecutive correct answers
    SRS_INTERVAL_TABLE: list[int] = DEFAULT_INTERVAL_TABLE
    SRS_UNIT_SECONDS: int = 86400  # One time-unit = one day
    # Demo/test mode: a "day" passes in a "minute". Read once when the clock is built.
    SRS_ACCELERATED_MODE: bool = False
    SRS_ACCELERATION_FACTOR: int = 1440

    # Review queries
    REVIEW_DEFAULT_LIMIT: int = 50

    # Study-set expansion after a session
    SESSION_NEW_ITEM_COUNT: int = 5
    SESSION_MASTERY_COUNT_THRESHOLD: int = 5
    SESSION_AUTO_EXPAND: bool = True

    @field_validator("SRS_INTERVAL_TABLE")
    @classmethod
    def _validate_interval_table(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("SRS_INTERVAL_TABLE must not be empty")
        if any(v <= 0 for v in value):
            raise ValueError("SRS_INTERVAL_TABLE entries must be positive")
        if any(b < a for a, b in zip(value, value[1:])):
            raise ValueError("SRS_INTERVAL_TABLE must be non-decreasing")
        return value

    @field_validator("SRS_UNIT_SECONDS", "SRS_ACCELERATION_FACTOR")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f)


yaml_config: dict[str, Any] = load_yaml_config()
