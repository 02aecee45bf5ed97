import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from defusedxml import ElementTree

logger = logging.getLogger(__name__)

INSTALLER_DATA_FILE = "installerdata.xml"
INSTALLER_DIR = "__Installer"
MAX_PARENT_LEVELS = 4


@dataclass
class Launcher:
    file_path: Optional[str] = None
    parameters: Optional[str] = None
    execute_elevated: bool = False
    requires_64bit_os: bool = False
    trial: bool = False


@dataclass
class GameInstallerData:
    """
    Contents of an Origin installerdata.xml (DiPManifest).
    Only the launchers and the installed build version are read.
    """
    launchers: List[Launcher] = field(default_factory=list)
    version: Optional[str] = None

    @property
    def launch_path(self) -> Optional[str]:
        # Manifests may list one launcher per locale or feature, the last one wins
        if not self.launchers:
            return None
        return self.launchers[-1].file_path


def _text(element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _flag(element, tag: str) -> bool:
    return (_text(element, tag) or "").lower() in ("1", "true")


def parse_installer_data(content) -> GameInstallerData:
    """
    Parses installerdata.xml content (str or bytes).
    Raises ElementTree.ParseError or ValueError on documents that are not a DiPManifest.
    """
    root = ElementTree.fromstring(content)
    if root.tag != "DiPManifest":
        raise ValueError(f"Unexpected root element {root.tag}")

    launchers = []
    for runtime in root.findall("runtime"):
        for element in runtime.findall("launcher"):
            launchers.append(Launcher(
                file_path=_text(element, "filePath"),
                parameters=_text(element, "parameters"),
                execute_elevated=_flag(element, "executeElevated"),
                requires_64bit_os=_flag(element, "requires64BitOS"),
                trial=_flag(element, "trial"),
            ))

    version = None
    game_version = root.find("buildMetaData/gameVersion")
    if game_version is not None:
        version = game_version.get("version")

    return GameInstallerData(launchers=launchers, version=version)


def find_installer_data(data_path: str) -> Optional[str]:
    """
    Returns the installerdata.xml to read for data_path.
    data_path is either the file itself or a folder somewhere below the game root;
    in the latter case up to four parent levels are searched for an __Installer folder.
    """
    if os.path.isfile(data_path):
        return data_path

    root_dir = data_path
    for _ in range(MAX_PARENT_LEVELS):
        target = os.path.join(root_dir, INSTALLER_DIR)
        if os.path.isdir(target):
            root_dir = target
            break
        root_dir = os.path.join(root_dir, "..")

    inst_path = os.path.normpath(os.path.join(root_dir, INSTALLER_DATA_FILE))
    if os.path.isfile(inst_path):
        return inst_path
    return None


def get_game_installer_data(data_path: str) -> Optional[GameInstallerData]:
    """
    Loads installer data for a file or folder hint.
    Returns None when nothing is found or the file can't be read,
    many games ship descriptors in a different, incompatible format.
    """
    try:
        path = find_installer_data(data_path)
        if not path:
            return None
        with open(path, "rb") as f:
            return parse_installer_data(f.read())
    except Exception as e:
        logger.error(f"Failed to deserialize game installer xml {data_path}: {e}", exc_info=True)
        return None
