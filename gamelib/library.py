import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from gamelib.errors import AggregateImportError
from gamelib.game_scanner import LibraryScanner
from gamelib.models import Credentials, GameRecord, Source
from gamelib.origin_api import OriginApiClient
from gamelib.origin_paths import OriginPathDetector
from gamelib.origin_scanner import OriginScanner
from gamelib.reconcile import reconcile
from gamelib.registry import RegistryReader
from gamelib.settings import SettingsManager
from gamelib.steam_paths import SteamPathDetector
from gamelib.steam_scanner import SteamScanner

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    INFO = "Info"
    ERROR = "Error"


@dataclass
class NotificationMessage:
    id: str
    text: str
    type: NotificationType = NotificationType.INFO


class Notifications:
    """
    Collects the messages the host should show, keyed by id.
    Adding a message with an existing id replaces it.
    """

    def __init__(self):
        self.messages: Dict[str, NotificationMessage] = {}

    def add(self, message: NotificationMessage):
        self.messages[message.id] = message

    def remove(self, message_id: str):
        self.messages.pop(message_id, None)

    def get(self, message_id: str) -> Optional[NotificationMessage]:
        return self.messages.get(message_id)


class LibraryPlugin:
    """
    What the host talks to: one plugin per platform, built around a LibraryScanner.
    """

    def __init__(self, scanner: LibraryScanner, settings: SettingsManager,
                 credentials: Optional[Credentials] = None,
                 notifications: Optional[Notifications] = None,
                 log: Optional[logging.Logger] = None):
        self.scanner = scanner
        self.settings = settings
        self.credentials = credentials or Credentials()
        self.notifications = notifications or Notifications()
        self.logger = log or logger
        self.last_error: Optional[AggregateImportError] = None

    @property
    def name(self) -> str:
        return self.scanner.name

    def get_installed_games(self) -> Dict[str, GameRecord]:
        return self.scanner.scan_installed()

    def get_library_games(self, credentials: Optional[Credentials] = None) -> List[GameRecord]:
        return self.scanner.scan_remote(credentials or self.credentials)

    def get_games(self) -> List[GameRecord]:
        """
        Runs the installed scan and the account import, then merges them.
        A failing phase doesn't stop the other one; failures are reported
        through one error notification, which is cleared again by a clean run.
        """
        installed: Dict[str, GameRecord] = {}
        remote: List[GameRecord] = []
        errors = []

        if self.settings.import_installed_games:
            try:
                installed = self.get_installed_games()
                self.logger.debug(f"Found {len(installed)} installed {self.name} games.")
            except Exception as e:
                self.logger.error(f"Failed to import installed {self.name} games: {e}", exc_info=True)
                errors.append(e)

        if self.settings.connect_account:
            try:
                remote = self.get_library_games()
                self.logger.debug(f"Found {len(remote)} library {self.name} games.")
            except Exception as e:
                self.logger.error(f"Failed to import linked account {self.name} games details: {e}", exc_info=True)
                errors.append(e)

        games = reconcile(installed, remote,
                          import_uninstalled=self.settings.import_uninstalled_games,
                          build_lookup=self.scanner.get_build_lookup() if remote else None)

        for game in installed.values():
            if game.outdated:
                self.logger.info(f"Game: {game.name} needs an update.")
                self.notifications.add(NotificationMessage(
                    f"updateAvailable-{game.source.value}-{game.game_id}",
                    f"An update is available for {game.name} via {self.name}",
                    NotificationType.INFO,
                ))

        if errors:
            self.last_error = AggregateImportError(self.name, errors)
            self.notifications.add(NotificationMessage(
                self.scanner.import_error_id,
                str(self.last_error),
                NotificationType.ERROR,
            ))
        else:
            self.last_error = None
            self.notifications.remove(self.scanner.import_error_id)

        return games


def create_plugin(source: Source, settings: SettingsManager,
                  registry: Optional[RegistryReader] = None,
                  notifications: Optional[Notifications] = None) -> LibraryPlugin:
    """Builds the plugin for a platform from the saved settings."""
    if source == Source.STEAM:
        scanner = SteamScanner(
            paths=SteamPathDetector(settings.steam_path, registry),
            include_mods=bool(settings.get("include_mods", True)),
            check_remote_builds=bool(settings.get("check_remote_builds", False)),
        )
        credentials = settings.steam_credentials()
    else:
        scanner = OriginScanner(
            paths=OriginPathDetector(settings.get("origin_data_path", ""), registry),
            api=OriginApiClient(),
        )
        credentials = settings.origin_credentials()

    return LibraryPlugin(scanner, settings, credentials, notifications)
