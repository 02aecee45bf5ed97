import logging
import re
from typing import Optional

from gamelib.errors import MalformedPathError, UnknownRootError
from gamelib.models import PlatformPath

# Try to import winreg for Windows registry access
try:
    import winreg
except ImportError:
    winreg = None

logger = logging.getLogger(__name__)

HKEY_LOCAL_MACHINE = "HKEY_LOCAL_MACHINE"
HKEY_CURRENT_USER = "HKEY_CURRENT_USER"
KNOWN_ROOTS = (HKEY_LOCAL_MACHINE, HKEY_CURRENT_USER)

VIEW_64 = 64
VIEW_32 = 32

_PLATFORM_PATH = re.compile(r"\[(.*?)\\(.*)\\(.*)\](.*)")


class RegistryReader:
    """
    Read-only access to registry values.
    Implementations return None when the key or the value does not exist.
    """

    def read_value(self, root: str, sub_path: str, name: str, view: int = VIEW_64) -> Optional[str]:
        raise NotImplementedError


class NullRegistry(RegistryReader):
    """Used where there is no registry at all (Linux, macOS)."""

    def read_value(self, root: str, sub_path: str, name: str, view: int = VIEW_64) -> Optional[str]:
        return None


class WinRegistry(RegistryReader):
    """Reads the real Windows registry through winreg."""

    def read_value(self, root: str, sub_path: str, name: str, view: int = VIEW_64) -> Optional[str]:
        if winreg is None:
            return None

        hive = winreg.HKEY_LOCAL_MACHINE if root == HKEY_LOCAL_MACHINE else winreg.HKEY_CURRENT_USER
        access = winreg.KEY_READ | (winreg.KEY_WOW64_64KEY if view == VIEW_64 else winreg.KEY_WOW64_32KEY)
        try:
            with winreg.OpenKey(hive, sub_path, 0, access) as key:
                val, _ = winreg.QueryValueEx(key, name)
                return str(val) if val is not None else None
        except OSError:
            return None


def default_registry() -> RegistryReader:
    return WinRegistry() if winreg else NullRegistry()


class PathResolver:
    """
    Resolves the paths found in Origin manifests.

    They are either plain paths or registry references like
    [HKEY_LOCAL_MACHINE\\SOFTWARE\\EA Games\\Game\\Install Dir]bin\\game.exe
    where the bracketed value is looked up and the rest is appended to it.
    """

    def __init__(self, registry: Optional[RegistryReader] = None):
        self.registry = registry or default_registry()

    def resolve(self, path: str) -> Optional[PlatformPath]:
        """
        Resolves a path, trying the 64-bit registry view before the 32-bit one.
        Returns None if the reference is malformed or points at nothing.
        Raises UnknownRootError for roots other than HKLM and HKCU.
        """
        if path is None:
            return None

        try:
            result = self.resolve_in_view(path, VIEW_64)
            if result is None:
                result = self.resolve_in_view(path, VIEW_32)
        except MalformedPathError:
            logger.warning(f"Unknown path format {path}")
            return None

        return result

    def resolve_in_view(self, path: str, view: int) -> Optional[PlatformPath]:
        if not path.startswith("["):
            return PlatformPath(complete_path=path)

        match = _PLATFORM_PATH.match(path)
        if not match:
            raise MalformedPathError(path)

        root, sub_path, name, trailing = match.groups()
        if root not in KNOWN_ROOTS:
            raise UnknownRootError(root)

        sub_path = sub_path.strip("\\")
        value = self.registry.read_value(root, sub_path, name, view)
        if value is None:
            return None

        return PlatformPath.from_parts(value, trailing.strip("\\/"))
