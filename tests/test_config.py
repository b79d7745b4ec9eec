"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ahorro.config import (
    GeminiSettings,
    IngestionSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Run each test away from any local .env file."""
    monkeypatch.chdir(tmp_path)
    for name in ("GEMINI_API_KEY", "AHORRO_STORAGE_DATA_DIR", "AHORRO_INGESTION_MAX_CONCURRENT_INGESTIONS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDefaults:
    """Tests for an empty environment."""

    def test_library_runs_without_configuration(self):
        settings = Settings()
        assert not settings.gemini.has_credential
        assert settings.storage.collection_path == Path("data") / "receipts.json"
        assert settings.ingestion.default_currency == "CLP"
        assert settings.app.app_environment == "development"

    def test_validate_all_settings(self):
        assert validate_all_settings() == {
            "gemini": True,
            "storage": True,
            "ingestion": True,
            "app": True,
        }


class TestEnvironment:
    """Tests for values read from environment variables."""

    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setenv("AHORRO_STORAGE_DATA_DIR", "/var/lib/ahorro")

        assert GeminiSettings().has_credential
        assert StorageSettings().data_dir == Path("/var/lib/ahorro")

    def test_out_of_range_value_is_reported(self, monkeypatch):
        """Test a bad value shows up as an error entry, not an exception."""
        monkeypatch.setenv("AHORRO_INGESTION_MAX_CONCURRENT_INGESTIONS", "0")

        with pytest.raises(ValidationError):
            IngestionSettings()

        results = validate_all_settings()
        assert results["ingestion"] is False
        assert "ingestion_error" in results
        assert results["gemini"] is True

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
