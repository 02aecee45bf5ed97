import logging
import platform
from pathlib import Path
from typing import List, Optional

from gamelib.registry import HKEY_CURRENT_USER, RegistryReader, default_registry
from gamelib.steam_vdf import KeyValue

logger = logging.getLogger(__name__)

STEAM_REGISTRY_KEY = r"Software\Valve\Steam"


class SteamPathDetector:
    """
    Detects the Steam installation and the folders games and configs live in.
    """

    def __init__(self, settings_path: str = "", registry: Optional[RegistryReader] = None):
        self.registry = registry or default_registry()
        self._settings_path = settings_path
        self._install_path: Optional[Path] = None

    @property
    def install_path(self) -> Optional[Path]:
        if self._install_path is None:
            self._install_path = self.get_steam_install_path()
        return self._install_path

    @property
    def is_installed(self) -> bool:
        return self.install_path is not None

    def get_steam_install_path(self) -> Optional[Path]:
        """
        Returns the Steam installation path.
        Priority:
        1. settings_path (if valid)
        2. Registry (Windows)
        3. Default locations (All OS)
        """
        # 1. Check settings path override
        if self._settings_path:
            path = Path(self._settings_path)
            if path.exists() and path.is_dir():
                return path

        # 2. Registry paths often use forward slashes or backslashes
        val = self.registry.read_value(HKEY_CURRENT_USER, STEAM_REGISTRY_KEY, "SteamPath")
        if val:
            reg_path = Path(val)
            if reg_path.exists():
                return reg_path

        system = platform.system()
        user_home = Path.home()
        candidates = []

        if system == "Windows":
            candidates = [
                Path("C:/Program Files (x86)/Steam"),
                Path("C:/Program Files/Steam"),
            ]
        elif system == "Linux":
            candidates = [
                user_home / ".local/share/Steam",
                user_home / ".steam/steam",
            ]
        elif system == "Darwin":  # macOS
            candidates = [
                user_home / "Library/Application Support/Steam",
            ]

        for path in candidates:
            if path.exists() and path.is_dir():
                return path

        return None

    @property
    def login_users_path(self) -> Optional[Path]:
        if not self.install_path:
            return None
        return self.install_path / "config" / "loginusers.vdf"

    @property
    def mod_install_path(self) -> Optional[Path]:
        """Half-Life (GoldSrc) mod folder, usually the Half-Life install itself."""
        val = self.registry.read_value(HKEY_CURRENT_USER, STEAM_REGISTRY_KEY, "ModInstallPath")
        if val:
            return Path(val)
        if self.install_path:
            return self.install_path / "steamapps" / "common" / "Half-Life"
        return None

    @property
    def source_mod_install_path(self) -> Optional[Path]:
        val = self.registry.read_value(HKEY_CURRENT_USER, STEAM_REGISTRY_KEY, "SourceModInstallPath")
        if val:
            return Path(val)
        if self.install_path:
            return self.install_path / "steamapps" / "sourcemods"
        return None

    def get_userdata_path(self, account_id: int) -> Optional[Path]:
        if not self.install_path:
            return None
        return self.install_path / "userdata" / str(account_id)

    def get_library_folders(self) -> List[Path]:
        """
        Returns the Steam install path followed by every extra library folder
        listed in steamapps/libraryfolders.vdf that exists on disk.
        """
        if not self.install_path:
            return []

        dbs = [self.install_path]
        config_path = self.install_path / "steamapps" / "libraryfolders.vdf"
        if not config_path.exists():
            return dbs

        try:
            kv = KeyValue.load_text(str(config_path))
            for folder in parse_library_folders(kv):
                path = Path(folder)
                if path.is_dir():
                    if path.resolve() != self.install_path.resolve():
                        dbs.append(path)
                else:
                    logger.warning(f"Found external Steam directory, but path doesn't exists: {folder}")
        except Exception as e:
            logger.error(f"Failed to get additional Steam library folders: {e}", exc_info=True)

        return dbs


def parse_library_folders(folders_data: KeyValue) -> List[str]:
    """
    Reads library paths from libraryfolders.vdf.
    Old files map an index straight to a path, newer ones hold a block with a "path" key.
    """
    dbs = []
    for child in folders_data.children:
        if not child.name or not child.name.isdigit():
            continue
        if child.value:
            dbs.append(child.value)
        elif child.children:
            path = child["path"].value
            if path:
                dbs.append(path)
    return dbs


def account_id_from_steam_id(steam_id: int) -> int:
    """64-bit SteamID to the 32-bit account id used for userdata folders."""
    return steam_id & 0xFFFFFFFF
