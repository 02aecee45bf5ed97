import re

_TRADEMARKS = re.compile(r"[™®©]")
_WHITESPACE = re.compile(r"\s+")


def remove_trademarks(name: str) -> str:
    """Strips ™, ® and © from a title."""
    if not name:
        return ""
    return _TRADEMARKS.sub("", name)


def normalize_game_name(name: str) -> str:
    """
    Returns the title the way it should be displayed.
    Trademark symbols are removed and runs of whitespace collapsed.
    """
    if not name:
        return ""
    name = remove_trademarks(name)
    return _WHITESPACE.sub(" ", name).strip()
