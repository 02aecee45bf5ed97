from typing import Dict, List, Optional, Protocol

from gamelib.models import Credentials, GameRecord, Source
from gamelib.reconcile import BuildLookup


class LibraryScanner(Protocol):
    """
    What every platform importer provides.

    scan_installed reads the local machine only, scan_remote reads the account library.
    """

    name: str
    source: Source
    import_error_id: str

    def scan_installed(self) -> Dict[str, GameRecord]:
        ...

    def scan_remote(self, credentials: Credentials) -> List[GameRecord]:
        ...

    def get_build_lookup(self) -> Optional[BuildLookup]:
        ...


def add_unique(games: Dict[str, GameRecord], game: GameRecord) -> bool:
    """Adds a game unless one with the same id is already there. First one wins."""
    if game.game_id in games:
        return False
    games[game.game_id] = game
    return True
