import logging
import ntpath
import os
from datetime import datetime
from typing import Callable, Dict, List, Optional

from gamelib.errors import ValidationError
from gamelib.game_scanner import add_unique
from gamelib.installer_data import INSTALLER_DATA_FILE, INSTALLER_DIR, get_game_installer_data
from gamelib.models import ActionType, Credentials, GameRecord, PlayAction, Source, join_path
from gamelib.names import normalize_game_name
from gamelib.origin_api import OriginApiClient
from gamelib.origin_data import LocalDataResponse, get_install_packages
from gamelib.origin_paths import OriginPathDetector, get_launch_string
from gamelib.reconcile import BuildLookup, is_out_of_date
from gamelib.registry import PathResolver

logger = logging.getLogger(__name__)

OWNED_BASE_GAME = "basegame"


class OriginScanner:
    """
    Finds Origin games installed on this machine and reads the account library.

    Local packages only carry an offer id, everything else (name, install check,
    launcher, available builds) comes from the offer's catalog record.
    """

    name = "Origin"
    source = Source.ORIGIN
    import_error_id = "originlibImportError"

    def __init__(self, paths: Optional[OriginPathDetector] = None, api: Optional[OriginApiClient] = None,
                 resolver: Optional[PathResolver] = None, clock: Optional[Callable[[], datetime]] = None,
                 log: Optional[logging.Logger] = None):
        self.paths = paths or OriginPathDetector()
        self.api = api or OriginApiClient()
        self.resolver = resolver or PathResolver(self.paths.registry)
        self.clock = clock
        self.logger = log or logger

    def get_local_manifest(self, offer_id: str) -> LocalDataResponse:
        return self.api.fetch_local_data(offer_id)

    def get_play_action_from_installer(self, installer_data_path: str) -> Optional[PlayAction]:
        """Play action of the last launcher in an installerdata.xml."""
        data = get_game_installer_data(installer_data_path)
        if data is None or not data.launch_path:
            return None

        paths = self.resolver.resolve(data.launch_path)
        if paths is None:
            return None

        if "://" in paths.complete_path:
            return PlayAction.url(paths.complete_path)

        if not paths.path:
            return PlayAction.file(paths.complete_path, ntpath.dirname(paths.complete_path))
        return PlayAction.file(paths.complete_path, paths.root)

    def get_play_action(self, local_data: LocalDataResponse) -> Optional[PlayAction]:
        software = local_data.pc_software
        if software is None or not software.execute_path_override:
            return None

        execute_path = software.execute_path_override
        if "://" in execute_path:
            return PlayAction.url(execute_path)

        paths = self.resolver.resolve(execute_path)
        if paths is None:
            return None

        if paths.complete_path.lower().endswith(INSTALLER_DATA_FILE):
            return self.get_play_action_from_installer(paths.complete_path)
        return PlayAction.file(paths.complete_path, paths.root)

    def get_install_directory(self, local_data: LocalDataResponse) -> Optional[str]:
        """
        Returns the install folder, or None if the game's install check file is missing.
        File actions start in the install folder, otherwise the check file's folder is used.
        """
        software = local_data.pc_software
        if software is None or not software.install_check_override:
            return None

        install_path = self.resolver.resolve(software.install_check_override)
        if install_path is None or not install_path.complete_path or not os.path.isfile(install_path.complete_path):
            return None

        action = self.get_play_action(local_data)
        if action is not None and action.type == ActionType.FILE and action.working_dir:
            return action.working_dir
        return ntpath.dirname(install_path.complete_path)

    def get_installed_version(self, local_data: LocalDataResponse) -> Optional[str]:
        """
        Version from the game's installerdata.xml.
        Returns None when there is no descriptor or it's in an unknown format.
        """
        software = local_data.pc_software
        if software is None or not software.execute_path_override:
            return None

        execute_path = self.resolver.resolve(software.execute_path_override)
        if execute_path is None:
            return None

        if execute_path.complete_path.lower().endswith(INSTALLER_DATA_FILE):
            data_path = execute_path.complete_path
        elif execute_path.root:
            data_path = join_path(execute_path.root, INSTALLER_DIR, INSTALLER_DATA_FILE)
        else:
            data_path = ntpath.dirname(execute_path.complete_path)

        installer_data = get_game_installer_data(data_path)
        if installer_data is None:
            return None
        return installer_data.version

    def is_out_of_date(self, local_data: LocalDataResponse, installed_version: Optional[str] = None) -> bool:
        software = local_data.pc_software
        if software is None:
            return False

        if installed_version is None:
            installed_version = self.get_installed_version(local_data)
        if installed_version is None:
            # Some games use different installerdata.xml which is incompatible
            return False

        now = self.clock() if self.clock else None
        return is_out_of_date(installed_version, software.download_urls, now)

    def scan_installed(self) -> Dict[str, GameRecord]:
        games: Dict[str, GameRecord] = {}

        for package in get_install_packages(str(self.paths.local_content_path)):
            try:
                try:
                    local_data = self.get_local_manifest(package.converted_id)
                except Exception as e:
                    self.logger.error(f"Failed to get Origin manifest for a {package.converted_id}, {package}: {e}")
                    continue

                if local_data is None or not local_data.is_installable:
                    continue

                install_dir = self.get_install_directory(local_data)
                if not install_dir:
                    continue

                game = GameRecord(
                    source=Source.ORIGIN,
                    game_id=package.converted_id,
                    name=normalize_game_name(local_data.display_name),
                    install_directory=install_dir,
                    play_action=PlayAction.url(get_launch_string(package.converted_id + package.source)),
                    is_installed=True,
                )
                game.version = self.get_installed_version(local_data)
                game.outdated = self.is_out_of_date(local_data, game.version)
                if game.outdated:
                    self.logger.info(f"Game: {game.name} needs an update.")

                add_unique(games, game)
            except Exception as e:
                self.logger.error(f"Failed to import installed Origin game {package}: {e}", exc_info=True)

        return games

    def scan_remote(self, credentials: Credentials) -> List[GameRecord]:
        if not credentials or not credentials.token:
            raise ValidationError("User is not logged in.")

        self.api.token = credentials.token
        user_id = credentials.user_id or self.api.fetch_account_id()

        games = []
        for owned in self.api.fetch_owned_games(user_id):
            if owned.offer_type != OWNED_BASE_GAME:
                continue

            usage = None
            try:
                usage = self.api.fetch_usage(user_id, owned.id)
            except Exception as e:
                self.logger.error(f"Failed to get usage data for {owned.id}: {e}")

            name = owned.id
            try:
                local_data = self.get_local_manifest(owned.id)
                if local_data is not None and local_data.display_name:
                    name = normalize_game_name(local_data.display_name)
            except Exception as e:
                self.logger.error(f"Failed to get Origin manifest for a {owned.id}: {e}")
                continue

            games.append(GameRecord(
                source=Source.ORIGIN,
                game_id=owned.id,
                name=name,
                last_activity=usage.last_session_end if usage else None,
                playtime=usage.total if usage else 0,
            ))

        return games

    def get_build_lookup(self) -> Optional[BuildLookup]:
        # Origin installs are checked against the catalog during the local scan
        return None
