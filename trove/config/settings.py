"""
Configuration Management for Trove

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The database location, the backup signature and the ledger limits are
all read once and validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_SIGNATURE = "trove-v1-10-2025-101701"


class DatabaseSettings(BaseSettings):
    """Local SQLite store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TROVE_DB_",
        extra="ignore"
    )

    path: Path = Field(
        default=Path("trove.db"),
        description="Path to the SQLite database file"
    )
    app_signature: str = Field(
        default=DEFAULT_APP_SIGNATURE,
        min_length=1,
        description="Signature written to _metadata and checked before restore"
    )
    busy_timeout_ms: int = Field(
        default=30000,
        ge=0,
        description="SQLite busy timeout in milliseconds"
    )

    @field_validator('path')
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand ~ so the store can live under the user's home."""
        return v.expanduser()


class LedgerSettings(BaseSettings):
    """Balance and field limits enforced by the ledger."""

    model_config = SettingsConfigDict(
        env_prefix="TROVE_LEDGER_",
        extra="ignore"
    )

    max_balance: Decimal = Field(
        default=Decimal("1000000000000"),
        gt=0,
        description="Largest balance an account may hold"
    )
    allow_negative_balance: bool = Field(
        default=False,
        description="Allow expenses and transfers to overdraw an account"
    )
    max_name_length: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum length of provider, nickname and account name"
    )
    max_description_length: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum length of a transaction description"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        description="How far in the future a transaction may be dated before a warning"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )
    backup_prefix: str = Field(
        default="trove-backup",
        min_length=1,
        description="File name prefix for backups"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access. Sub-settings can be
    passed explicitly, which is how tests point the store at a temp file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    app: AppSettings = Field(default_factory=AppSettings)


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

    for name, factory in (
        ("database", DatabaseSettings),
        ("ledger", LedgerSettings),
        ("app", AppSettings),
    ):
        try:
            factory()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
