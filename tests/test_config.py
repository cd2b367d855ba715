"""Tests for configuration loading."""

import json

import pytest

from sheet_catalog.exceptions import ConfigurationError
from sheet_catalog.models.config import BackendConfig, CatalogConfig, load_config, save_config


class TestCatalogConfig:
    """Test defaults and environment overlays."""

    def test_defaults(self):
        config = CatalogConfig.default()
        assert config.backend.bucket == "music-sheets"
        assert config.library.page_size == 15
        assert config.library.suggestion_limit == 5
        assert config.library.root_admin_email == "admin@lege.music"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SHEET_CATALOG_URL", "https://p.supabase.co")
        monkeypatch.setenv("SHEET_CATALOG_ANON_KEY", "anon")
        monkeypatch.setenv("SHEET_CATALOG_ROOT_ADMIN", "root@example.com")
        monkeypatch.delenv("SHEET_CATALOG_BUCKET", raising=False)

        config = CatalogConfig.from_env()

        assert config.backend.url == "https://p.supabase.co"
        assert config.backend.anon_key == "anon"
        assert config.backend.bucket == "music-sheets"
        assert config.library.root_admin_email == "root@example.com"

    def test_require_credentials(self):
        with pytest.raises(ConfigurationError, match="url, anon_key"):
            BackendConfig().require_credentials()
        BackendConfig(url="https://p.supabase.co", anon_key="k").require_credentials()


class TestConfigFiles:
    """Test JSON persistence."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "config.json"
        config = CatalogConfig.default()
        config.backend.url = "https://p.supabase.co"
        config.library.page_size = 20

        save_config(config, path)
        loaded = load_config(path)

        assert loaded == config

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"library": {"page_size": 30}, "unknown": 1}))

        loaded = load_config(path)

        assert loaded.library.page_size == 30
        assert loaded.library.suggestion_limit == 5
        assert loaded.backend == BackendConfig()

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "config.json"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "absent.json")
