# File: taskhub/core/config.py
"""
Configuration settings for TaskHub.

This module defines application settings using Pydantic's BaseSettings,
which supports environment variable loading and validation.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are read from the process environment first and from a local
    ``.env`` file second.
    """

    model_config = SettingsConfigDict(
        case_sensitive=True, env_file=".env", extra="ignore"
    )

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "TaskHub"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_PATH: str = "taskhub.db"
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)
    DB_POOL_PRE_PING: bool = True

    # Request context headers
    TENANT_HEADER: str = "X-Tenant-ID"
    USER_HEADER: str = "X-User-ID"

    # Recurrence / calendar limits
    CALENDAR_MAX_RANGE_DAYS: int = 366
    RECURRENCE_MAX_SPAN_DAYS: int = 366
    DEFAULT_TIMEZONE: str = "UTC"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info) -> str:
        """Fall back to a local SQLite file when no URL is configured."""
        if isinstance(v, str) and v:
            return v
        return f"sqlite:///{info.data.get('DATABASE_PATH', 'taskhub.db')}"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        return v.upper() if v.upper() in valid_levels else "INFO"

    @field_validator("CALENDAR_MAX_RANGE_DAYS", "RECURRENCE_MAX_SPAN_DAYS")
    @classmethod
    def validate_positive_days(cls, v: int) -> int:
        return max(1, v)


# Create settings instance
settings = Settings()
