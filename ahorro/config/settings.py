"""
Configuration Management for Ahorro

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every setting has a usable default, so the library runs with an empty
environment: no Gemini key simply means the deterministic fallback
extraction is used.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini extraction provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key (absent = offline fallback extraction)"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use for receipt extraction"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @field_validator('api_key')
    @classmethod
    def blank_key_is_missing(cls, v: Optional[str]) -> Optional[str]:
        """An empty key in .env means 'not configured'."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def has_credential(self) -> bool:
        return self.api_key is not None


class StorageSettings(BaseSettings):
    """Local storage layout for the collection file and blobs."""

    model_config = SettingsConfigDict(
        env_prefix="AHORRO_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for the collection file and attachments"
    )
    collection_filename: str = Field(
        default="receipts.json",
        description="Name of the collection file inside data_dir"
    )
    attachments_dir: str = Field(
        default="Attachments",
        description="Key prefix for stored documents"
    )
    thumbnails_dir: str = Field(
        default="Thumbnails",
        description="Key prefix for generated thumbnails"
    )

    # Collection rewrites
    persist_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for one collection rewrite before giving up"
    )
    persist_retry_wait_seconds: float = Field(
        default=0.2,
        ge=0.0,
        le=10.0,
        description="Wait between collection rewrite attempts"
    )

    @property
    def collection_path(self) -> Path:
        return self.data_dir / self.collection_filename


class IngestionSettings(BaseSettings):
    """Ingestion pipeline tuning."""

    model_config = SettingsConfigDict(
        env_prefix="AHORRO_INGESTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_concurrent_ingestions: int = Field(
        default=2,
        ge=1,
        le=16,
        description="Worker slots for attachment writes and gateway calls"
    )
    thumbnail_max_px: int = Field(
        default=600,
        ge=64,
        le=4096,
        description="Thumbnails fit inside a square of this size"
    )
    thumbnail_quality: int = Field(
        default=70,
        ge=1,
        le=95,
        description="JPEG quality for thumbnails"
    )
    cleanup_orphaned_attachments: bool = Field(
        default=True,
        description="Delete the stored blob when extraction fails"
    )
    default_currency: str = Field(
        default="CLP",
        min_length=3,
        max_length=3,
        description="Currency assumed when the provider does not report one"
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

    # Sub-settings are built on access so tests can patch the environment

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def ingestion(self) -> IngestionSettings:
        return IngestionSettings()

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

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing anything that failed to load.
    """
    results = {}
    settings = get_settings()

    for name in ("gemini", "storage", "ingestion", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
