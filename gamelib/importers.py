import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, Optional, Tuple

from gamelib.errors import ValidationError
from gamelib.models import GameRecord, Source
from gamelib.steam_scanner import SteamScanner

logger = logging.getLogger(__name__)


class GameDatabase:
    """
    The host's persisted game records, keyed by (source, game_id).
    """

    def __init__(self, games: Optional[Iterable[GameRecord]] = None, is_open: bool = True):
        self.is_open = is_open
        self._games: Dict[Tuple[Source, str], GameRecord] = {}
        for game in games or ():
            self.add(game)

    def add(self, game: GameRecord):
        self._games[game.key] = game

    def get(self, source: Source, game_id: str) -> Optional[GameRecord]:
        return self._games.get((source, game_id))

    def __iter__(self) -> Iterator[GameRecord]:
        return iter(self._games.values())

    def __len__(self) -> int:
        return len(self._games)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _check_preconditions(account_id: int, db: Optional[GameDatabase], what: str):
    if not account_id:
        raise ValidationError(f"Can't import {what}, no Steam account is selected.")
    if db is None or not db.is_open:
        raise ValidationError(f"Can't import {what}, the game database is not open.")


def import_last_activity(scanner: SteamScanner, account_id: int, db: GameDatabase) -> int:
    """
    Copies last played times from the Steam client into the database.
    A record is only touched when Steam's time is newer. Returns the number of updated games.
    """
    _check_preconditions(account_id, db, "last activity")

    updated = 0
    try:
        for game_id, last_played in scanner.get_games_last_activity(account_id).items():
            db_game = db.get(Source.STEAM, game_id)
            if db_game is None:
                continue

            current = _as_utc(db_game.last_activity)
            if current is not None and current >= last_played:
                continue

            db_game.last_activity = last_played
            updated += 1
    except Exception as e:
        logger.error(f"Failed to import Steam last activity: {e}", exc_info=True)
        raise

    logger.info(f"Updated last activity of {updated} Steam games.")
    return updated


def import_categories(scanner: SteamScanner, account_id: int, db: GameDatabase) -> int:
    """
    Merges Steam tags into the database categories.
    Hidden and favorite are only ever switched on, never cleared.
    Returns the number of games whose categories or flags actually changed.
    """
    _check_preconditions(account_id, db, "categories")

    updated = 0
    try:
        for game in scanner.get_categorized_games(account_id):
            db_game = db.get(Source.STEAM, game.game_id)
            if db_game is None:
                continue

            before = (len(db_game.categories), db_game.hidden, db_game.favorite)
            if game.categories:
                db_game.add_categories(game.categories)
            if game.hidden:
                db_game.hidden = True
            if game.favorite:
                db_game.favorite = True
            if (len(db_game.categories), db_game.hidden, db_game.favorite) != before:
                updated += 1
    except Exception as e:
        logger.error(f"Failed to import Steam categories: {e}", exc_info=True)
        raise

    logger.info(f"Updated categories of {updated} Steam games.")
    return updated
