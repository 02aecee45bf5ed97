from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from gamelib.errors import ParseError, ValidationError
from gamelib.importers import GameDatabase, import_categories, import_last_activity
from gamelib.models import GameRecord, Source

ACCOUNT_ID = 76561197960287930
OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)
NEW = datetime(2023, 1, 1, tzinfo=timezone.utc)


def _db() -> GameDatabase:
    return GameDatabase([
        GameRecord(source=Source.STEAM, game_id="220", name="Half-Life 2", last_activity=OLD),
        GameRecord(source=Source.STEAM, game_id="400", name="Portal", last_activity=NEW,
                   categories=["Puzzle"], hidden=True),
        GameRecord(source=Source.ORIGIN, game_id="220", name="Not a Steam game"),
    ])


def test_last_activity_only_moves_forward() -> None:
    scanner = Mock()
    scanner.get_games_last_activity.return_value = {"220": NEW, "400": OLD, "999": NEW}
    db = _db()

    assert import_last_activity(scanner, ACCOUNT_ID, db) == 1

    assert db.get(Source.STEAM, "220").last_activity == NEW
    assert db.get(Source.STEAM, "400").last_activity == NEW
    assert db.get(Source.ORIGIN, "220").last_activity is None


def test_last_activity_sets_missing_value() -> None:
    scanner = Mock()
    scanner.get_games_last_activity.return_value = {"1": NEW}
    db = GameDatabase([GameRecord(source=Source.STEAM, game_id="1")])

    assert import_last_activity(scanner, ACCOUNT_ID, db) == 1
    assert db.get(Source.STEAM, "1").last_activity == NEW


def test_categories_merge_without_clearing_flags() -> None:
    scanner = Mock()
    scanner.get_categorized_games.return_value = [
        GameRecord(source=Source.STEAM, game_id="220", categories=["Shooter", "Classic"], favorite=True),
        GameRecord(source=Source.STEAM, game_id="400", categories=["Puzzle", "Co-op"]),
        GameRecord(source=Source.STEAM, game_id="999", categories=["Unknown"]),
    ]
    db = _db()

    assert import_categories(scanner, ACCOUNT_ID, db) == 2

    hl2 = db.get(Source.STEAM, "220")
    assert hl2.categories == ["Shooter", "Classic"]
    assert hl2.favorite
    assert not hl2.hidden

    portal = db.get(Source.STEAM, "400")
    assert portal.categories == ["Puzzle", "Co-op"]
    assert portal.hidden
    assert not portal.favorite


def test_categories_already_up_to_date_are_not_counted() -> None:
    scanner = Mock()
    scanner.get_categorized_games.return_value = [
        GameRecord(source=Source.STEAM, game_id="400", categories=["Puzzle"], hidden=True),
        GameRecord(source=Source.STEAM, game_id="220"),
    ]
    db = _db()

    assert import_categories(scanner, ACCOUNT_ID, db) == 0
    assert db.get(Source.STEAM, "400").categories == ["Puzzle"]


@pytest.mark.parametrize("account_id, db", [
    (0, GameDatabase()),
    (ACCOUNT_ID, None),
    (ACCOUNT_ID, GameDatabase(is_open=False)),
])
def test_preconditions(account_id, db) -> None:
    scanner = Mock()
    with pytest.raises(ValidationError):
        import_last_activity(scanner, account_id, db)
    with pytest.raises(ValidationError):
        import_categories(scanner, account_id, db)
    scanner.get_games_last_activity.assert_not_called()
    scanner.get_categorized_games.assert_not_called()


def test_read_errors_are_logged_and_raised(caplog) -> None:
    scanner = Mock()
    scanner.get_categorized_games.side_effect = ParseError("broken", "sharedconfig.vdf")

    with pytest.raises(ParseError):
        import_categories(scanner, ACCOUNT_ID, _db())
    assert "Failed to import Steam categories" in caplog.text
