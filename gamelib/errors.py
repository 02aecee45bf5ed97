from typing import List, Optional


class GameLibError(Exception):
    """Base class for every error raised by the library importers."""


class MalformedPathError(GameLibError):
    def __init__(self, path: str):
        super().__init__(f"Unknown path format {path}")
        self.path = path


class UnknownRootError(GameLibError):
    def __init__(self, root: str):
        super().__init__(f"Unknown registry root entry {root}")
        self.root = root


class ParseError(GameLibError):
    def __init__(self, message: str, source: Optional[str] = None):
        if source:
            message = f"{source}: {message}"
        super().__init__(message)
        self.source = source


class RemoteServiceError(GameLibError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AggregateImportError(GameLibError):
    """
    One import run failed in at least one phase.
    The individual phase errors are kept in `errors`.
    """

    def __init__(self, library_name: str, errors: List[Exception]):
        self.library_name = library_name
        self.errors = list(errors)
        details = "\n".join(str(e) for e in self.errors)
        super().__init__(f"Failed to import games from {library_name}.\n{details}")


class ValidationError(GameLibError):
    """A user-facing precondition failed (no account selected, database closed...)."""
