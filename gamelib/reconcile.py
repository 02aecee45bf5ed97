import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from gamelib.models import GameRecord
from gamelib.origin_data import DownloadUrl

logger = logging.getLogger(__name__)

# (game_id, branch) -> latest build id, or None when unknown
BuildLookup = Callable[[str, Optional[str]], Optional[int]]


def latest_effective_version(history: Iterable[DownloadUrl], now: Optional[datetime] = None) -> Optional[str]:
    """
    Returns the build version of the most recent entry that is already effective.
    Entries dated in the future are ignored.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    latest = None
    for entry in history:
        if entry.effective_date is None or entry.effective_date > now:
            continue
        if latest is None or entry.effective_date > latest.effective_date:
            latest = entry

    return latest.build_release_version if latest else None


def is_out_of_date(installed_version: Optional[str], history: Iterable[DownloadUrl],
                   now: Optional[datetime] = None) -> bool:
    """
    True when the installed version differs from the latest effective one.
    The versions are compared as plain strings, so a downgrade counts as well.
    """
    if installed_version is None:
        return False
    latest = latest_effective_version(history, now)
    if latest is None:
        return False
    return installed_version != latest


def check_remote_build(game: GameRecord, build_lookup: BuildLookup) -> bool:
    """
    Marks an installed game outdated when the remote branch has a higher build id.
    Games whose local version isn't a number are left alone.
    """
    if game.outdated:
        return True

    try:
        installed_build = int(game.version)
    except (TypeError, ValueError):
        return False

    latest_build = build_lookup(game.game_id, game.branch)
    if latest_build is not None and installed_build < latest_build:
        game.outdated = True
    return game.outdated


def reconcile(installed: Dict[str, GameRecord], remote: List[GameRecord],
              import_uninstalled: bool = True,
              build_lookup: Optional[BuildLookup] = None) -> List[GameRecord]:
    """
    Merges installed games with the account library.

    Installed games come first, in scan order, and keep their identity and install data;
    they only take playtime and last activity from the matching library entry.
    Library games that aren't installed are appended in library order,
    unless import_uninstalled is False.
    """
    games = list(installed.values())
    seen = set(installed.keys())

    if not import_uninstalled:
        remote = [game for game in remote if game.game_id in installed]

    for game in remote:
        local = installed.get(game.game_id)
        if local is not None:
            local.playtime = game.playtime
            local.last_activity = game.last_activity

            if build_lookup is not None:
                try:
                    check_remote_build(local, build_lookup)
                except Exception as e:
                    logger.error(f"Failed to check latest build of {local.name}: {e}")
            continue

        if game.game_id in seen:
            continue

        seen.add(game.game_id)
        game.is_installed = False
        game.install_directory = None
        games.append(game)

    return games
