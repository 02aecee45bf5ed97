from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class Source(str, Enum):
    STEAM = "Steam"
    ORIGIN = "Origin"


class ActionType(str, Enum):
    URL = "URL"
    FILE = "File"


@dataclass
class PlayAction:
    """
    How a game is launched. URL actions keep the URL in `path`,
    File actions keep the executable in `path` and its start folder in `working_dir`.
    """
    type: ActionType
    path: str
    working_dir: Optional[str] = None
    is_handled_by_plugin: bool = True
    name: Optional[str] = None

    @classmethod
    def url(cls, url: str, name: Optional[str] = None) -> "PlayAction":
        return cls(type=ActionType.URL, path=url, name=name)

    @classmethod
    def file(cls, path: str, working_dir: Optional[str] = None) -> "PlayAction":
        return cls(type=ActionType.FILE, path=path, working_dir=working_dir)


@dataclass
class GameRecord:
    source: Source
    game_id: str
    name: str = ""
    install_directory: Optional[str] = None
    play_action: Optional[PlayAction] = None
    is_installed: bool = False
    playtime: int = 0  # seconds
    last_activity: Optional[datetime] = None
    version: Optional[str] = None
    branch: Optional[str] = None
    outdated: bool = False
    categories: List[str] = field(default_factory=list)
    hidden: bool = False
    favorite: bool = False
    platform: str = "PC"

    # Only filled in for mods, which ship their own descriptor
    developers: List[str] = field(default_factory=list)
    links: Dict[str, str] = field(default_factory=dict)
    icon: Optional[str] = None

    @property
    def key(self):
        return (self.source, self.game_id)

    def add_categories(self, tags: List[str]):
        for tag in tags:
            if tag and tag not in self.categories:
                self.categories.append(tag)


@dataclass
class InstallPackage:
    original_id: str
    converted_id: str
    source: str = ""  # '@subscription' style sub-type marker, if any


@dataclass
class PlatformPath:
    """
    A path read from a manifest. Literal paths only set complete_path,
    registry references also carry the resolved root and the relative part.
    """
    complete_path: str
    root: Optional[str] = None
    path: Optional[str] = None

    @classmethod
    def from_parts(cls, root: str, path: str) -> "PlatformPath":
        if not path:
            return cls(complete_path=root, root=root, path=path)
        return cls(complete_path=join_path(root, path), root=root, path=path)


def join_path(root: str, *parts: str) -> str:
    # Registry values are Windows paths, unless a POSIX root was configured
    if "/" in root and "\\" not in root:
        sep = "/"
        parts = tuple(p.replace("\\", "/") for p in parts if p)
    else:
        sep = "\\"
    return sep.join([root.rstrip("\\/")] + [p.strip("\\/") for p in parts if p])


@dataclass
class LocalSteamUser:
    id: int
    account_name: Optional[str] = None
    persona_name: Optional[str] = None
    recent: bool = False


@dataclass
class OwnedGame:
    """Entry of a remote owned-games catalog."""
    id: str
    name: Optional[str] = None
    offer_type: Optional[str] = None
    playtime_minutes: int = 0


@dataclass
class UsageData:
    total: int = 0  # seconds, as reported by the usage service
    last_session_end: Optional[datetime] = None

    @property
    def total_minutes(self) -> int:
        return self.total // 60


@dataclass
class Credentials:
    """
    What a scanner needs to read an account library.
    Steam uses user_id (64-bit SteamID) and api_key, Origin uses token.
    """
    user_id: Optional[str] = None
    api_key: Optional[str] = None
    token: Optional[str] = None
    include_free_sub: bool = False
