"""Tests for application settings."""

import pytest

from runebox.clients.catalog import CatalogClientOptions
from runebox.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("SYNC_INTERVAL_SECONDS", raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite+aiosqlite:///data/runebox.db"
        assert settings.sync_interval_seconds == 900
        assert settings.catalog_page_size == 1000

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Settings come from the process environment."""
        monkeypatch.setenv("CATALOG_URL", "https://catalog.example.com")
        monkeypatch.setenv("CATALOG_API_KEY", "anon-key")
        monkeypatch.setenv("BACKGROUND_SYNC_ENABLED", "false")

        settings = Settings(_env_file=None)

        assert settings.catalog_url == "https://catalog.example.com"
        assert settings.catalog_api_key == "anon-key"
        assert settings.background_sync_enabled is False

    def test_catalog_options(self) -> None:
        """Client options are built from settings, never read by the client itself."""
        settings = Settings(
            _env_file=None,
            catalog_url="https://catalog.example.com",
            catalog_api_key="anon-key",
            catalog_page_size=250,
            catalog_timeout=5.0,
        )

        options = settings.catalog_options()

        assert isinstance(options, CatalogClientOptions)
        assert options.base_url == "https://catalog.example.com"
        assert options.api_key == "anon-key"
        assert options.page_size == 250
        assert options.timeout == 5.0
