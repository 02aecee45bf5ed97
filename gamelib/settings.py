import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from gamelib.models import Credentials

logger = logging.getLogger(__name__)


class SettingsManager:
    """
    Manages persistent importer settings using a JSON file.
    """
    SETTINGS_FILE = Path("settings.json")

    DEFAULT_SETTINGS = {
        "import_installed_games": True,
        "connect_account": False,
        "import_uninstalled_games": False,
        "include_mods": True,
        "check_remote_builds": False,
        "steam_path": "",
        "steam_user_id": "",
        "steam_api_key": "",
        "include_free_sub_games": False,
        "origin_data_path": "",
        "origin_token": "",
    }

    def __init__(self, settings_file: Optional[Path] = None):
        if settings_file is not None:
            self.SETTINGS_FILE = Path(settings_file)
        self._settings = self.load_settings()

    def load_settings(self) -> Dict[str, Any]:
        """
        Loads settings from disk, or returns defaults if file doesn't exist.
        """
        if not self.SETTINGS_FILE.exists():
            return self.DEFAULT_SETTINGS.copy()

        try:
            with open(self.SETTINGS_FILE, "r") as f:
                data = json.load(f)
                # Merge with defaults to ensure all keys exist
                settings = self.DEFAULT_SETTINGS.copy()
                settings.update(data)
                return settings
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading settings: {e}")
            return self.DEFAULT_SETTINGS.copy()

    def save_settings(self):
        """
        Saves current settings to disk.
        """
        try:
            with open(self.SETTINGS_FILE, "w") as f:
                json.dump(self._settings, f, indent=4)
        except OSError as e:
            logger.error(f"Error saving settings: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set(self, key: str, value: Any):
        self._settings[key] = value
        self.save_settings()

    def override(self, key: str, value: Any):
        """Changes a setting for this run only."""
        self._settings[key] = value

    @property
    def import_installed_games(self) -> bool:
        return bool(self._settings.get("import_installed_games"))

    @property
    def connect_account(self) -> bool:
        return bool(self._settings.get("connect_account"))

    @property
    def import_uninstalled_games(self) -> bool:
        return bool(self._settings.get("import_uninstalled_games"))

    @property
    def steam_path(self) -> str:
        return self._settings.get("steam_path", "")

    @steam_path.setter
    def steam_path(self, path: str):
        self.set("steam_path", path)

    def steam_credentials(self) -> Credentials:
        return Credentials(
            user_id=self._settings.get("steam_user_id") or None,
            api_key=self._settings.get("steam_api_key") or None,
            include_free_sub=bool(self._settings.get("include_free_sub_games")),
        )

    def origin_credentials(self) -> Credentials:
        return Credentials(token=self._settings.get("origin_token") or None)
