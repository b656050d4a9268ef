"""
Configuration Management for Ahorra

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Storage selection, validation limits and alert thresholds are all
read from the environment (or .env) and validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Storage backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AHORRA_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="auto",
        pattern="^(auto|sql|document)$",
        description="Storage backend: auto (by platform), sql or document"
    )
    platform: Optional[str] = Field(
        default=None,
        pattern="^(mobile|web)$",
        description="Target platform override; detected when unset"
    )
    sql_url: str = Field(
        default="sqlite:///ahorra.db",
        description="SQLAlchemy URL for the embedded relational store"
    )
    document_path: Optional[str] = Field(
        default=None,
        description="JSON file for the document store (memory-only when unset)"
    )
    init_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="How long callers wait for an in-flight initialization"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (console renderer otherwise)"
    )

    # Money
    default_currency: str = Field(
        default="MXN",
        min_length=3,
        max_length=3,
        description="Currency used when the user has no preference"
    )
    max_amount: float = Field(
        default=1_000_000_000.0,
        gt=0,
        description="Largest accepted transaction or budget amount"
    )

    # Budget alert thresholds (percent of the monthly cap)
    near_limit_percentage: float = Field(
        default=90.0,
        ge=0,
        le=100,
        description="Budget is near its limit from this percentage"
    )
    exceeded_percentage: float = Field(
        default=100.0,
        ge=0,
        description="Budget is exceeded above this percentage"
    )

    # Security
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=16,
        description="bcrypt cost factor for password hashes"
    )
    recovery_code_ttl_minutes: int = Field(
        default=15,
        ge=1,
        le=1440,
        description="Lifetime of a password recovery code"
    )
    recovery_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Wrong recovery codes tolerated before restart"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        """Currency codes are stored upper-case."""
        return v.strip().upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    try:
        app = settings.app
        if app.exceeded_percentage < app.near_limit_percentage:
            raise ValueError(
                "exceeded_percentage must not be below near_limit_percentage"
            )
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
