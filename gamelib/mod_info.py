import logging
import zlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from gamelib.steam_vdf import KeyValue

logger = logging.getLogger(__name__)

HALF_LIFE_APP_ID = 70
SOURCE_SDK_BASE_APP_ID = 215

# GameID types, stored in bits 24-31 of a 64-bit Steam game id
GAME_TYPE_APP = 0
GAME_TYPE_MOD = 1


class ModType(Enum):
    HL = "GoldSrc"
    HL2 = "Source"


def make_game_id(app_id: int, game_type: int = GAME_TYPE_APP, mod_id: int = 0) -> int:
    """Packs a 64-bit Steam game id: mod id, type and app id (24 bits)."""
    return ((mod_id & 0xFFFFFFFF) << 32) | ((game_type & 0xFF) << 24) | (app_id & 0xFFFFFF)


def mod_game_id(app_id: int, folder_name: str) -> int:
    """Game id Steam assigns to a mod folder, based on the CRC32 of its name."""
    crc = zlib.crc32(folder_name.encode("utf-8")) & 0xFFFFFFFF
    return make_game_id(app_id, GAME_TYPE_MOD, crc | 0x80000000)


@dataclass
class ModInfo:
    game_id: int
    name: str
    mod_type: ModType
    developer: Optional[str] = None
    links: Dict[str, str] = field(default_factory=dict)
    categories: List[str] = field(default_factory=list)
    icon_path: Optional[str] = None

    @staticmethod
    def get_from_folder(path: Path, mod_type: ModType) -> Optional["ModInfo"]:
        """
        Reads a mod descriptor: liblist.gam for GoldSrc mods, gameinfo.txt for Source mods.
        Returns None when the folder has no descriptor or no game name.
        Raises ParseError when the descriptor is malformed.
        """
        path = Path(path)
        if mod_type == ModType.HL:
            descriptor = path / "liblist.gam"
            if not descriptor.is_file():
                return None
            data = KeyValue.load_document(str(descriptor))
            app_id = HALF_LIFE_APP_ID
        else:
            descriptor = path / "gameinfo.txt"
            if not descriptor.is_file():
                return None
            data = KeyValue.load_text(str(descriptor))
            app_id = data["FileSystem"]["SteamAppId"].as_unsigned_integer(SOURCE_SDK_BASE_APP_ID)

        name = data["game"].as_string()
        if not name:
            logger.warning(f"Mod descriptor {descriptor} has no game name, skipping.")
            return None

        links = {}
        if data["developer_url"].value:
            links["Official website"] = data["developer_url"].value
        if data["manual"].value:
            links["Manual"] = data["manual"].value

        categories = ["Mod"]
        game_type = data["type"].as_string().lower()
        if game_type.startswith("singleplayer"):
            categories.append("Singleplayer")
        elif game_type.startswith("multiplayer"):
            categories.append("Multiplayer")

        return ModInfo(
            game_id=mod_game_id(app_id, path.name),
            name=name,
            mod_type=mod_type,
            developer=data["developer"].value,
            links=links,
            categories=categories,
            icon_path=ModInfo._find_icon(path, data["icon"].value, mod_type),
        )

    @staticmethod
    def _find_icon(path: Path, icon: Optional[str], mod_type: ModType) -> Optional[str]:
        candidates = []
        if icon:
            icon = icon.replace("\\", "/")
            candidates += [path / f"{icon}.tga", path / f"{icon}_big.tga", path / icon]
        if mod_type == ModType.HL:
            candidates.append(path / "game.ico")

        for candidate in candidates:
            if candidate.is_file():
                return str(candidate)
        return None
