import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from gamelib.errors import ParseError, ValidationError
from gamelib.game_scanner import add_unique
from gamelib.mod_info import GAME_TYPE_MOD, ModInfo, ModType, make_game_id
from gamelib.models import Credentials, GameRecord, LocalSteamUser, PlayAction, Source
from gamelib.names import normalize_game_name
from gamelib.reconcile import BuildLookup
from gamelib.steam_api import SteamApiClient
from gamelib.steam_paths import SteamPathDetector, account_id_from_steam_id
from gamelib.steam_vdf import KeyValue

logger = logging.getLogger(__name__)

# Steamworks Common Redistributables
REDIST_APP_ID = "228980"

FIRST_PARTY_MODS = ("bshift", "cstrike", "czero", "czeror", "dmc", "dod", "gearbox", "ricochet", "tfc", "valve")


def create_play_action(game_id) -> PlayAction:
    return PlayAction.url(f"steam://rungameid/{game_id}", name="Play")


class SteamScanner:
    """
    Finds Steam games installed on this machine and reads the account library.
    """

    name = "Steam"
    source = Source.STEAM
    import_error_id = "steamlibImportError"

    def __init__(self, paths: Optional[SteamPathDetector] = None, api: Optional[SteamApiClient] = None,
                 include_mods: bool = True, check_remote_builds: bool = False,
                 log: Optional[logging.Logger] = None):
        self.paths = paths or SteamPathDetector()
        self.api = api or SteamApiClient()
        self.include_mods = include_mods
        self.check_remote_builds = check_remote_builds
        self.logger = log or logger

    # --- Installed games ---

    def get_installed_game_from_file(self, path: Path) -> GameRecord:
        """
        Builds a game from an appmanifest_*.acf file.
        Raises ParseError when the manifest is broken or has no app id.
        """
        path = Path(path)
        kv = KeyValue.load_text(str(path))

        name = kv["name"].as_string()
        if not name:
            name = kv["UserConfig"]["name"].as_string()

        app_id = kv["appid"].as_unsigned_integer()
        if not app_id:
            raise ParseError("Manifest has no app id", str(path))

        steamapps = path.parent
        install_dir = ""
        dir_name = kv["installdir"].as_string()
        if dir_name:
            for folder in ("common", "music"):
                candidate = steamapps / folder / dir_name
                if candidate.is_dir():
                    install_dir = str(candidate)
                    break

        branch = kv["UserConfig"]["betakey"].as_string()
        if not branch:
            branch = "public"

        state = kv["StateFlags"].as_unsigned_integer()
        # Bit 2 is set while an update is pending
        outdated = (state & 2) == 2

        return GameRecord(
            source=Source.STEAM,
            game_id=str(app_id),
            name=normalize_game_name(name),
            install_directory=install_dir,
            play_action=create_play_action(app_id),
            is_installed=True,
            version=str(kv["buildid"].as_unsigned_integer()),
            branch=branch,
            outdated=outdated,
        )

    def get_installed_games_from_folder(self, steamapps: Path) -> List[GameRecord]:
        games = []
        music_dir = Path(steamapps) / "music"

        for file in sorted(Path(steamapps).glob("appmanifest*")):
            try:
                game = self.get_installed_game_from_file(file)
            except Exception as e:
                # Steam can write broken acf files
                self.logger.error(f"Failed to get information about installed game from: {file}: {e}")
                continue

            if not game.install_directory or Path(game.install_directory).parent == music_dir:
                self.logger.info(f"Steam game {game.name} is not properly installed or it's a soundtrack, skipping.")
                continue

            games.append(game)

        return games

    def get_installed_mod_from_folder(self, path: Path, mod_type: ModType) -> Optional[GameRecord]:
        mod_info = ModInfo.get_from_folder(path, mod_type)
        if mod_info is None:
            return None

        return GameRecord(
            source=Source.STEAM,
            game_id=str(mod_info.game_id),
            name=normalize_game_name(mod_info.name),
            install_directory=str(path),
            play_action=create_play_action(mod_info.game_id),
            is_installed=True,
            developers=[mod_info.developer] if mod_info.developer else [],
            links=mod_info.links,
            categories=list(mod_info.categories),
            icon=mod_info.icon_path,
        )

    def get_installed_mods_from_folder(self, path: Path, mod_type: ModType) -> List[GameRecord]:
        """
        Reads every mod folder below path.
        Valve's own GoldSrc games live next to the mods and are skipped.
        """
        games = []
        for folder in sorted(p for p in Path(path).iterdir() if p.is_dir()):
            if mod_type == ModType.HL and folder.name in FIRST_PARTY_MODS:
                continue
            try:
                game = self.get_installed_mod_from_folder(folder, mod_type)
                if game is not None:
                    games.append(game)
            except Exception as e:
                # gameinfo.txt may not exist or may be invalid
                self.logger.error(f"Failed to get information about installed {mod_type.value} mod from: {folder}: {e}")

        return games

    def scan_installed(self) -> Dict[str, GameRecord]:
        games: Dict[str, GameRecord] = {}
        if not self.paths.is_installed:
            return games

        for folder in self.paths.get_library_folders():
            lib_folder = folder / "steamapps"
            if not lib_folder.is_dir():
                self.logger.warning(f"Steam library {lib_folder} not found.")
                continue

            for game in self.get_installed_games_from_folder(lib_folder):
                if game.game_id == REDIST_APP_ID:
                    continue
                add_unique(games, game)

        if self.include_mods:
            try:
                for mod_path, mod_type in ((self.paths.mod_install_path, ModType.HL),
                                           (self.paths.source_mod_install_path, ModType.HL2)):
                    if mod_path and mod_path.is_dir():
                        for game in self.get_installed_mods_from_folder(mod_path, mod_type):
                            add_unique(games, game)
            except Exception as e:
                self.logger.error(f"Failed to import Steam mods: {e}", exc_info=True)

        return games

    def get_steam_users(self) -> List[LocalSteamUser]:
        users = []
        path = self.paths.login_users_path
        if not path or not path.is_file():
            return users

        try:
            config = KeyValue.load_text(str(path))
            for user in config.children:
                users.append(LocalSteamUser(
                    id=int(user.name),
                    account_name=user["AccountName"].value,
                    persona_name=user["PersonaName"].value,
                    recent=user["mostrecent"].as_boolean(),
                ))
        except Exception as e:
            self.logger.error(f"Failed to get list of local users: {e}")

        return users

    # --- Account library ---

    def scan_remote(self, credentials: Credentials) -> List[GameRecord]:
        if not credentials or not credentials.user_id:
            raise ValidationError("Steam account is not set, can't import library games.")
        if not credentials.api_key:
            raise ValidationError("A Steam Web API key is required to import library games.")

        user_id = int(credentials.user_id)
        owned_games = self.api.fetch_owned_games(user_id, credentials.api_key, credentials.include_free_sub)

        last_activity = None
        try:
            last_activity = self.get_games_last_activity(user_id)
        except Exception as e:
            self.logger.warning(f"Failed to import Steam last activity: {e}")

        games = []
        for owned in owned_games:
            # Ignore games without name, like 243870
            if not owned.name:
                continue

            game = GameRecord(
                source=Source.STEAM,
                game_id=owned.id,
                name=normalize_game_name(owned.name),
                playtime=owned.playtime_minutes * 60,
            )
            if last_activity:
                game.last_activity = last_activity.get(game.game_id)
            games.append(game)

        return games

    def get_build_lookup(self) -> Optional[BuildLookup]:
        if not self.check_remote_builds:
            return None
        return self.api.fetch_latest_build

    # --- User config ---

    def _user_config(self, steam_id: int, *parts: str) -> KeyValue:
        userdata = self.paths.get_userdata_path(account_id_from_steam_id(int(steam_id)))
        if userdata is None:
            raise ValidationError("Steam installation not found.")
        return KeyValue.load_text(str(userdata.joinpath(*parts)))

    def get_games_last_activity(self, steam_id: int) -> Dict[str, datetime]:
        """Reads last played times from the user's localconfig.vdf."""
        config = self._user_config(steam_id, "config", "localconfig.vdf")
        result = {}

        for app in config["Software"]["Valve"]["Steam"]["apps"].children:
            if not app.children:
                continue
            game_id = convert_app_key(app.name)
            if game_id is None:
                continue
            last_played = app["LastPlayed"].as_long()
            if not last_played:
                continue
            result[game_id] = datetime.fromtimestamp(last_played, tz=timezone.utc)

        return result

    def get_categorized_games(self, steam_id: int) -> List[GameRecord]:
        """Reads tags, favorites and hidden flags from the user's sharedconfig.vdf."""
        config = self._user_config(steam_id, "7", "remote", "sharedconfig.vdf")
        result = []

        for app in config["Software"]["Valve"]["Steam"]["apps"].children:
            if not app.children:
                continue
            game_id = convert_app_key(app.name)
            if game_id is None:
                continue

            categories = []
            is_favorite = False
            for tag in app["tags"].children:
                if tag.value == "favorite":
                    is_favorite = True
                elif tag.value:
                    categories.append(tag.value)

            result.append(GameRecord(
                source=Source.STEAM,
                game_id=game_id,
                categories=categories,
                hidden=app["hidden"].as_integer() == 1,
                favorite=is_favorite,
            ))

        return result


def convert_app_key(key: str) -> Optional[str]:
    """
    Turns an apps section key into a game id.
    Mods are keyed "<appid>_<modid>" (e.g. 215_2287856061) and become 64-bit game ids.
    Returns None for malformed keys.
    """
    if "_" not in key:
        return key

    parts = key.split("_")
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return None
    return str(make_game_id(int(parts[0]), GAME_TYPE_MOD, int(parts[1])))
