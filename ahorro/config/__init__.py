"""Configuration package."""

from ahorro.config.settings import (
    AppSettings,
    GeminiSettings,
    IngestionSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "IngestionSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
