"""Configuration package."""

from expense_tracker.config.settings import (
    DEFAULT_CURRENCY_RATES,
    AppSettings,
    CloudinarySettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_CURRENCY_RATES",
    "AppSettings",
    "CloudinarySettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
