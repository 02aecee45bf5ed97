import os
from pathlib import Path
from typing import Optional

from gamelib.registry import RegistryReader, default_registry


class OriginPathDetector:
    """
    Detects where Origin keeps its data.
    """

    def __init__(self, data_path: str = "", registry: Optional[RegistryReader] = None):
        self.registry = registry or default_registry()
        self._data_path = data_path

    @property
    def data_path(self) -> Path:
        if self._data_path:
            return Path(self._data_path)
        program_data = os.environ.get("PROGRAMDATA", "C:/ProgramData")
        return Path(program_data) / "Origin"

    @property
    def local_content_path(self) -> Path:
        return self.data_path / "LocalContent"


def get_launch_string(offer_id: str) -> str:
    return f"origin2://game/launch?offerIds={offer_id}&autoDownload=true"
