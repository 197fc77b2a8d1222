"""Configuration package."""

from trove.config.settings import (
    DEFAULT_APP_SIGNATURE,
    AppSettings,
    DatabaseSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_APP_SIGNATURE",
    "AppSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
