from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

from gamelib.errors import ValidationError
from gamelib.mod_info import HALF_LIFE_APP_ID, ModInfo, ModType, mod_game_id
from gamelib.models import ActionType, Credentials, OwnedGame
from gamelib.registry import NullRegistry
from gamelib.steam_paths import SteamPathDetector, parse_library_folders
from gamelib.steam_scanner import SteamScanner, convert_app_key
from gamelib.steam_vdf import KeyValue

STEAM_ID = 76561197960287930
ACCOUNT_ID = 22202


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _manifest(app_id, name, install_dir, state=4, build=100, user_config=""):
    return f'''"AppState"
{{
    "appid"       "{app_id}"
    "name"        "{name}"
    "StateFlags"  "{state}"
    "installdir"  "{install_dir}"
    "buildid"     "{build}"
    "UserConfig"
    {{
        {user_config}
    }}
}}
'''


@pytest.fixture
def steam(tmp_path: Path) -> Path:
    root = tmp_path / "Steam"
    apps = root / "steamapps"

    _write(apps / "appmanifest_220.acf", _manifest(220, "Half-Life 2™", "Half-Life 2", build=4233294))
    (apps / "common" / "Half-Life 2").mkdir(parents=True)

    _write(apps / "appmanifest_10.acf", _manifest(10, "", "Counter-Strike", state=6,
                                                  user_config='"name" "Counter-Strike" "betakey" "beta"'))
    (apps / "common" / "Counter-Strike").mkdir(parents=True)

    _write(apps / "appmanifest_228980.acf", _manifest(228980, "Steamworks Common Redistributables", "Steamworks Shared"))
    (apps / "common" / "Steamworks Shared").mkdir(parents=True)

    _write(apps / "appmanifest_555.acf", _manifest(555, "Soundtrack", "OST"))
    (apps / "music" / "OST").mkdir(parents=True)

    _write(apps / "appmanifest_666.acf", _manifest(666, "Not Downloaded", "Missing"))
    _write(apps / "appmanifest_777.acf", '"AppState" { "appid" "777" ')

    library = tmp_path / "Library2"
    _write(library / "steamapps" / "appmanifest_300.acf", _manifest(300, "Day of Defeat: Source", "dods"))
    (library / "steamapps" / "common" / "dods").mkdir(parents=True)
    # Same game in a second library, the first one found wins
    _write(library / "steamapps" / "appmanifest_220.acf", _manifest(220, "Half-Life 2 copy", "hl2copy"))
    (library / "steamapps" / "common" / "hl2copy").mkdir(parents=True)

    _write(apps / "libraryfolders.vdf", f'''"libraryfolders"
{{
    "contentstatsid" "123"
    "0" {{ "path" "{root.as_posix()}" }}
    "1" {{ "path" "{library.as_posix()}" }}
    "2" {{ "path" "{(tmp_path / 'Gone').as_posix()}" }}
}}
''')
    return root


def _scanner(root: Path, **kwargs) -> SteamScanner:
    return SteamScanner(paths=SteamPathDetector(str(root), NullRegistry()), **kwargs)


def test_reads_installed_game_manifest(steam: Path) -> None:
    game = _scanner(steam).get_installed_game_from_file(steam / "steamapps" / "appmanifest_220.acf")

    assert game.game_id == "220"
    assert game.name == "Half-Life 2"
    assert game.install_directory == str(steam / "steamapps" / "common" / "Half-Life 2")
    assert game.is_installed
    assert game.version == "4233294"
    assert game.branch == "public"
    assert not game.outdated
    assert game.play_action.type == ActionType.URL
    assert game.play_action.path == "steam://rungameid/220"


def test_name_fallback_branch_and_pending_update(steam: Path) -> None:
    game = _scanner(steam).get_installed_game_from_file(steam / "steamapps" / "appmanifest_10.acf")

    assert game.name == "Counter-Strike"
    assert game.branch == "beta"
    assert game.outdated


def test_scan_installed(steam: Path, caplog) -> None:
    games = _scanner(steam, include_mods=False).scan_installed()

    assert sorted(games) == ["10", "220", "300"]
    assert games["220"].name == "Half-Life 2"
    assert "appmanifest_777.acf" in caplog.text


def test_library_folders_skip_missing_and_duplicates(steam: Path, tmp_path: Path, caplog) -> None:
    folders = SteamPathDetector(str(steam), NullRegistry()).get_library_folders()

    assert folders == [steam, tmp_path / "Library2"]
    assert "Gone" in caplog.text


def test_old_style_library_folders() -> None:
    kv = KeyValue.parse_text('"LibraryFolders" { "TimeNextStatsReport" "1" "1" "D:\\\\Steam" "2" "E:\\\\Steam" }')
    assert parse_library_folders(kv) == ["D:\\Steam", "E:\\Steam"]


def test_missing_steam_install(tmp_path: Path, monkeypatch) -> None:
    paths = SteamPathDetector(str(tmp_path / "nope"), NullRegistry())
    monkeypatch.setattr(paths, "get_steam_install_path", lambda: None)
    scanner = SteamScanner(paths=paths)

    assert not paths.is_installed
    assert paths.get_library_folders() == []
    assert scanner.scan_installed() == {}
    assert scanner.get_steam_users() == []


def test_goldsrc_and_source_mods(steam: Path) -> None:
    hl = steam / "steamapps" / "common" / "Half-Life"
    _write(hl / "valve" / "liblist.gam", 'game "Half-Life"\n')
    _write(hl / "azure" / "liblist.gam",
           'game "Azure Sheep"\ndeveloper "Kristian Joensen"\ntype "singleplayer_only"\nicon "azure"\n')
    _write(hl / "azure" / "azure.tga", "")
    (hl / "empty").mkdir()

    sourcemods = steam / "steamapps" / "sourcemods"
    _write(sourcemods / "mymod" / "gameinfo.txt", '''"GameInfo"
{
    game "My Mod"
    type multiplayer_only
    developer_url "http://example.com/mymod"
    FileSystem
    {
        SteamAppId 243730
    }
}
''')
    _write(sourcemods / "plainmod" / "gameinfo.txt", '"GameInfo" { game "Plain Mod" }')
    _write(sourcemods / "broken" / "gameinfo.txt", '"GameInfo" { game ')

    games = _scanner(steam).scan_installed()

    azure = games[str(mod_game_id(HALF_LIFE_APP_ID, "azure"))]
    assert azure.name == "Azure Sheep"
    assert azure.developers == ["Kristian Joensen"]
    assert azure.categories == ["Mod", "Singleplayer"]
    assert azure.icon == str(hl / "azure" / "azure.tga")
    assert azure.play_action.path == f"steam://rungameid/{azure.game_id}"
    assert str(mod_game_id(HALF_LIFE_APP_ID, "valve")) not in games

    mymod = games[str(mod_game_id(243730, "mymod"))]
    assert mymod.links == {"Official website": "http://example.com/mymod"}
    assert mymod.categories == ["Mod", "Multiplayer"]
    assert str(mod_game_id(215, "plainmod")) in games


def test_source_mod_descriptor_with_byte_order_mark(tmp_path: Path) -> None:
    mod = tmp_path / "notepadmod"
    mod.mkdir()
    (mod / "gameinfo.txt").write_bytes(b"\xef\xbb\xbf" + b'"GameInfo"\n{\n    game "Notepad Mod"\n}\n')

    info = ModInfo.get_from_folder(mod, ModType.HL2)

    assert info is not None
    assert info.name == "Notepad Mod"
    assert info.game_id == mod_game_id(215, "notepadmod")


def test_mod_game_id_layout() -> None:
    game_id = mod_game_id(HALF_LIFE_APP_ID, "azure")
    assert game_id & 0xFFFFFF == HALF_LIFE_APP_ID
    assert (game_id >> 24) & 0xFF == 1
    assert (game_id >> 32) & 0x80000000


def test_mod_without_name_is_ignored(tmp_path: Path) -> None:
    _write(tmp_path / "liblist.gam", 'developer "Someone"\n')
    assert ModInfo.get_from_folder(tmp_path, ModType.HL) is None


def test_local_users(steam: Path) -> None:
    _write(steam / "config" / "loginusers.vdf", f'''"users"
{{
    "{STEAM_ID}"
    {{
        "AccountName"  "gabe"
        "PersonaName"  "Gabe"
        "mostrecent"   "1"
    }}
}}
''')
    users = _scanner(steam).get_steam_users()

    assert len(users) == 1
    assert users[0].id == STEAM_ID
    assert users[0].account_name == "gabe"
    assert users[0].persona_name == "Gabe"
    assert users[0].recent


@pytest.fixture
def user_config(steam: Path) -> Path:
    userdata = steam / "userdata" / str(ACCOUNT_ID)
    _write(userdata / "config" / "localconfig.vdf", '''"UserLocalConfigStore"
{
    "Software" { "Valve" { "Steam" { "apps" {
        "220" { "LastPlayed" "1700000000" }
        "215_2287856061" { "LastPlayed" "1600000000" }
        "bad_key_x" { "LastPlayed" "1" }
        "300" { "Playtime" "5" }
        "400" { "LastPlayed" "0" }
        "empty" ""
    } } } }
}
''')
    _write(userdata / "7" / "remote" / "sharedconfig.vdf", '''"UserRoamingConfigStore"
{
    "Software" { "Valve" { "Steam" { "Apps" {
        "220" { "tags" { "0" "Shooter" "1" "favorite" } "hidden" "1" }
        "10" { "tags" { "0" "Classic" } }
    } } } }
}
''')
    return userdata


def test_last_activity(steam: Path, user_config: Path) -> None:
    activity = _scanner(steam).get_games_last_activity(STEAM_ID)

    assert activity["220"] == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert activity[str((2287856061 << 32) | (1 << 24) | 215)] == datetime.fromtimestamp(1600000000, tz=timezone.utc)
    assert len(activity) == 2


def test_last_activity_skips_games_never_played(steam: Path, user_config: Path) -> None:
    activity = _scanner(steam).get_games_last_activity(STEAM_ID)

    assert "300" not in activity
    assert "400" not in activity


def test_categorized_games(steam: Path, user_config: Path) -> None:
    games = {g.game_id: g for g in _scanner(steam).get_categorized_games(STEAM_ID)}

    assert games["220"].categories == ["Shooter"]
    assert games["220"].favorite
    assert games["220"].hidden
    assert games["10"].categories == ["Classic"]
    assert not games["10"].favorite
    assert not games["10"].hidden


def test_convert_app_key() -> None:
    assert convert_app_key("440") == "440"
    assert convert_app_key("215_2287856061") == str((2287856061 << 32) | (1 << 24) | 215)
    assert convert_app_key("215_x") is None
    assert convert_app_key("1_2_3") is None


def test_scan_remote(steam: Path, user_config: Path) -> None:
    api = Mock()
    api.fetch_owned_games.return_value = [
        OwnedGame(id="220", name="Half-Life 2®", playtime_minutes=90),
        OwnedGame(id="243870", name=None),
        OwnedGame(id="400", name="Portal"),
    ]
    scanner = _scanner(steam, api=api)

    games = scanner.scan_remote(Credentials(user_id=str(STEAM_ID), api_key="KEY", include_free_sub=True))

    api.fetch_owned_games.assert_called_once_with(STEAM_ID, "KEY", True)
    assert [g.game_id for g in games] == ["220", "400"]
    assert games[0].name == "Half-Life 2"
    assert games[0].playtime == 5400
    assert games[0].last_activity == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert games[1].last_activity is None
    assert not games[0].is_installed


def test_scan_remote_without_local_config(steam: Path, caplog) -> None:
    api = Mock()
    api.fetch_owned_games.return_value = [OwnedGame(id="400", name="Portal")]

    games = _scanner(steam, api=api).scan_remote(Credentials(user_id=str(STEAM_ID), api_key="KEY"))

    assert [g.game_id for g in games] == ["400"]
    assert "last activity" in caplog.text


@pytest.mark.parametrize("credentials", [
    Credentials(),
    Credentials(user_id=str(STEAM_ID)),
])
def test_scan_remote_requires_account(steam: Path, credentials: Credentials) -> None:
    with pytest.raises(ValidationError):
        _scanner(steam, api=Mock()).scan_remote(credentials)


def test_build_lookup_is_optional(steam: Path) -> None:
    api = Mock()
    assert _scanner(steam, api=api).get_build_lookup() is None
    assert _scanner(steam, api=api, check_remote_builds=True).get_build_lookup() is api.fetch_latest_build
