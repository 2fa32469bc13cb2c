r"""
Global Settings Management for Cowrite.

Uses platformdirs to store user settings in OS-standard locations.
Manages API keys, model selections, and orchestration preferences.

Storage Locations (via platformdirs):
- Windows: %APPDATA%\Cowrite\config.json
- Linux: ~/.config/cowrite/config.json
- macOS: ~/Library/Application Support/Cowrite/config.json

Environment variables (loaded from .env by the server entry point) act as
fallbacks when a value is not set in config.json.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any
from platformdirs import user_config_dir, user_data_dir

logger = logging.getLogger(__name__)


# Env var fallbacks for API keys
API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}

DEFAULT_USER_ID = "default-user"


class SettingsManager:
    """
    Manages global user settings in OS-standard config directory.

    Settings are stored as JSON and include:
    - API keys (OpenAI, Anthropic, Google)
    - Model selections (master_agent, specialist_default, router)
    - Preferences (step budget, routing hints, URL allow-list, storage)
    """

    APP_NAME = "Cowrite"
    APP_AUTHOR = "Cowrite"
    CONFIG_FILE_NAME = "config.json"
    DB_FILE_NAME = "cowrite.db"

    # Default settings structure
    DEFAULT_SETTINGS = {
        "api_keys": {
            "openai": "",
            "anthropic": "",
            "google": ""
        },
        "models": {
            "master_agent": "gpt-5-mini",
            "specialist_default": "gpt-5-mini",
            "router": "gpt-5-nano"
        },
        "preferences": {
            "master_max_steps": 10,
            "routing_hints": True,
            "app_base_url": "",
            "dev_mode": False,
            "database_path": "",
            "http_tool_timeout": 30.0,
            "user_id": DEFAULT_USER_ID
        }
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize SettingsManager with platformdirs config directory.

        Args:
            config_dir: Override for the config directory (tests).
        """
        if config_dir is None:
            config_dir = Path(user_config_dir(self.APP_NAME, self.APP_AUTHOR))
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / self.CONFIG_FILE_NAME

        self.config_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Settings config directory: {self.config_dir}")

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from config file.

        Returns:
            Dict with settings (uses defaults if file doesn't exist).
        """
        if not self.config_file.exists():
            logger.debug("Config file not found, using defaults")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                settings = json.load(f)
            return self._merge_with_defaults(settings)

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            logger.warning("Using default settings")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

        except OSError as e:
            logger.error(f"Failed to load settings: {e}")
            return copy.deepcopy(self.DEFAULT_SETTINGS)

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to config file.

        Args:
            settings: Settings dict to save.

        Returns:
            True if save succeeded, False otherwise.
        """
        try:
            validated_settings = self._merge_with_defaults(settings)

            # Write to temp file first (atomic write)
            temp_file = self.config_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(validated_settings, f, indent=2)

            temp_file.replace(self.config_file)

            logger.info("Settings saved successfully")
            return True

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get_api_key(self, provider: str) -> Optional[str]:
        """
        Get API key for a specific provider.

        Falls back to the provider's environment variable when config.json
        has no key.

        Args:
            provider: Provider name ("openai", "anthropic" or "google").

        Returns:
            API key string or None if not configured.
        """
        settings = self.load_settings()
        api_key = settings.get("api_keys", {}).get(provider, "")
        if not api_key and provider in API_KEY_ENV_VARS:
            api_key = os.environ.get(API_KEY_ENV_VARS[provider], "")
        return api_key if api_key else None

    def set_api_key(self, provider: str, api_key: str) -> bool:
        """Set API key for a specific provider."""
        settings = self.load_settings()
        settings.setdefault("api_keys", {})[provider] = api_key
        return self.save_settings(settings)

    def get_model(self, component: str) -> str:
        """
        Get configured model for a specific component.

        Args:
            component: Component name ("master_agent", "specialist_default", "router").

        Returns:
            Model name (defaults from DEFAULT_SETTINGS if not configured).
        """
        settings = self.load_settings()
        return settings.get("models", {}).get(
            component,
            self.DEFAULT_SETTINGS["models"][component]
        )

    def set_model(self, component: str, model_name: str) -> bool:
        """Set model for a specific component."""
        settings = self.load_settings()
        settings.setdefault("models", {})[component] = model_name
        return self.save_settings(settings)

    def get_preference(self, key: str, default: Any = None) -> Any:
        """
        Get user preference value.

        Args:
            key: Preference key (e.g., "master_max_steps", "dev_mode").
            default: Default value if key not found.

        Returns:
            Preference value or default.
        """
        settings = self.load_settings()
        return settings.get("preferences", {}).get(key, default)

    def set_preference(self, key: str, value: Any) -> bool:
        """Set user preference value."""
        settings = self.load_settings()
        settings.setdefault("preferences", {})[key] = value
        return self.save_settings(settings)

    def get_app_base_url(self) -> str:
        """Deployment origin used by the HTTP tool allow-list (APP_BASE_URL fallback)."""
        return self.get_preference("app_base_url") or os.environ.get("APP_BASE_URL", "")

    def is_dev_mode(self) -> bool:
        """True when dev mode is on in config or via COWRITE_DEV_MODE=true."""
        if self.get_preference("dev_mode", False):
            return True
        return os.environ.get("COWRITE_DEV_MODE", "").lower() == "true"

    def get_user_id(self) -> str:
        """Owner key threaded through every store call."""
        return self.get_preference("user_id") or DEFAULT_USER_ID

    def get_database_path(self) -> Path:
        """
        Resolve the SQLite database location.

        Returns:
            The configured path, or cowrite.db in the platformdirs data directory.
        """
        configured = self.get_preference("database_path")
        if configured:
            return Path(configured)
        data_dir = Path(user_data_dir(self.APP_NAME, self.APP_AUTHOR))
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.DB_FILE_NAME

    def _merge_with_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user settings with defaults to handle missing keys.

        Args:
            settings: User settings dict (potentially incomplete).

        Returns:
            Complete settings dict with defaults filled in.
        """
        merged = copy.deepcopy(self.DEFAULT_SETTINGS)

        for section in ["api_keys", "models", "preferences"]:
            if isinstance(settings.get(section), dict):
                merged[section].update(settings[section])

        return merged

    def reset_to_defaults(self) -> bool:
        """Reset all settings to defaults."""
        logger.warning("Resetting settings to defaults")
        return self.save_settings(copy.deepcopy(self.DEFAULT_SETTINGS))

    def get_config_file_path(self) -> Path:
        """Get absolute path to config file for debugging."""
        return self.config_file


# Singleton instance for global access
_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """
    Get singleton SettingsManager instance.

    Returns:
        Global SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def set_settings_manager(manager: Optional[SettingsManager]) -> None:
    """Replace the global SettingsManager (tests and embedding)."""
    global _settings_manager
    _settings_manager = manager


__all__ = [
    "SettingsManager",
    "get_settings_manager",
    "set_settings_manager",
    "DEFAULT_USER_ID",
]
