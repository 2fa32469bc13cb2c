"""
Tests for cowrite/core/settings.py - SettingsManager.

Tests:
- Settings load/save with platformdirs override
- Default values and merge
- Environment fallbacks
- Database path resolution
"""

import json
from pathlib import Path

from cowrite.core.settings import SettingsManager, DEFAULT_USER_ID


class TestSettingsManager:
    """Tests for SettingsManager class."""

    def test_defaults_without_config_file(self, tmp_path):
        manager = SettingsManager(config_dir=tmp_path)
        settings = manager.load_settings()

        assert set(settings) == {"api_keys", "models", "preferences"}
        assert settings["preferences"]["master_max_steps"] == 10
        assert manager.get_model("router") == SettingsManager.DEFAULT_SETTINGS["models"]["router"]

    def test_defaults_are_not_shared(self, tmp_path):
        manager = SettingsManager(config_dir=tmp_path)
        manager.load_settings()["preferences"]["dev_mode"] = True
        assert SettingsManager.DEFAULT_SETTINGS["preferences"]["dev_mode"] is False

    def test_set_preference_persists(self, tmp_path):
        manager = SettingsManager(config_dir=tmp_path)
        assert manager.set_preference("master_max_steps", 25) is True

        reloaded = SettingsManager(config_dir=tmp_path)
        assert reloaded.get_preference("master_max_steps") == 25

    def test_partial_file_merged_with_defaults(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"models": {"router": "tiny"}}))
        manager = SettingsManager(config_dir=tmp_path)

        assert manager.get_model("router") == "tiny"
        assert manager.get_model("master_agent") == SettingsManager.DEFAULT_SETTINGS["models"]["master_agent"]

    def test_corrupt_file_uses_defaults(self, tmp_path):
        (tmp_path / "config.json").write_text("{not json")
        manager = SettingsManager(config_dir=tmp_path)
        assert manager.get_preference("routing_hints") is True

    def test_api_key_env_fallback(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        manager = SettingsManager(config_dir=tmp_path)
        assert manager.get_api_key("openai") == "sk-env"

        manager.set_api_key("openai", "sk-config")
        assert manager.get_api_key("openai") == "sk-config"

    def test_missing_api_key(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        assert SettingsManager(config_dir=tmp_path).get_api_key("anthropic") is None

    def test_dev_mode_env(self, tmp_path, monkeypatch):
        manager = SettingsManager(config_dir=tmp_path)
        monkeypatch.setenv("COWRITE_DEV_MODE", "true")
        assert manager.is_dev_mode() is True

    def test_app_base_url_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APP_BASE_URL", "https://cowrite.example.com")
        assert SettingsManager(config_dir=tmp_path).get_app_base_url() == "https://cowrite.example.com"

    def test_user_id_default(self, tmp_path):
        assert SettingsManager(config_dir=tmp_path).get_user_id() == DEFAULT_USER_ID

    def test_configured_database_path(self, tmp_path):
        manager = SettingsManager(config_dir=tmp_path)
        manager.set_preference("database_path", str(tmp_path / "x.db"))
        assert manager.get_database_path() == Path(tmp_path / "x.db")

    def test_reset_to_defaults(self, tmp_path):
        manager = SettingsManager(config_dir=tmp_path)
        manager.set_preference("master_max_steps", 3)
        manager.reset_to_defaults()
        assert manager.get_preference("master_max_steps") == 10
