import re
from typing import Iterator, List, Optional, Tuple

from gamelib.errors import ParseError

# Tokenizer regex: comments, quoted strings, structural characters, bare words
_TOKEN_PATTERN = re.compile(r'(//[^\n]*)|"((?:\\.|[^\\"])*)"|([{}])|([^\s{}"]+)|(")')
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


def _unescape(value: str) -> str:
    if "\\" not in value:
        return value
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), "\\" + m.group(1)), value)


class KeyValue:
    """
    One node of a Valve KeyValues text document (appmanifest_*.acf, *.vdf, gameinfo.txt).

    A node has a name and either a scalar value or an ordered list of children.
    Child names may repeat. Indexing is case-insensitive and never fails:
    a missing child yields MISSING, so node["a"]["b"]["c"] is always safe.
    """

    def __init__(self, name: Optional[str] = None, value: Optional[str] = None,
                 children: Optional[List["KeyValue"]] = None):
        self._name = name
        self._value = value
        self._children: Tuple[KeyValue, ...] = tuple(children or ())

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def value(self) -> Optional[str]:
        return self._value

    @property
    def children(self) -> Tuple["KeyValue", ...]:
        return self._children

    @property
    def is_missing(self) -> bool:
        return False

    def __getitem__(self, key: str) -> "KeyValue":
        lowered = key.lower()
        for child in self._children:
            if child.name is not None and child.name.lower() == lowered:
                return child
        return MISSING

    def get_all(self, key: str) -> List["KeyValue"]:
        lowered = key.lower()
        return [c for c in self._children if c.name is not None and c.name.lower() == lowered]

    def __iter__(self) -> Iterator["KeyValue"]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __bool__(self) -> bool:
        return True

    def __repr__(self):
        if self._children:
            return f"KeyValue({self._name!r}, children={len(self._children)})"
        return f"KeyValue({self._name!r}, {self._value!r})"

    # --- Coercion ---

    def as_string(self, default: str = "") -> str:
        return self._value if self._value is not None else default

    def as_integer(self, default: int = 0) -> int:
        try:
            return int(self._value)
        except (TypeError, ValueError):
            return default

    def as_long(self, default: int = 0) -> int:
        return self.as_integer(default)

    def as_unsigned_integer(self, default: int = 0) -> int:
        value = self.as_integer(-1)
        if value < 0 or value > 0xFFFFFFFF:
            return default
        return value

    def as_boolean(self, default: bool = False) -> bool:
        if self._value is None:
            return default
        value = self._value.strip().lower()
        if value in ("1", "true"):
            return True
        if value in ("0", "false", ""):
            return False
        try:
            return int(value) != 0
        except ValueError:
            return default

    # --- Parsing ---

    @staticmethod
    def load_text(file_path: str) -> "KeyValue":
        """Loads a text KeyValues file and returns its top-level node."""
        return KeyValue.parse_text(KeyValue._read(file_path), source=str(file_path))

    @staticmethod
    def load_document(file_path: str) -> "KeyValue":
        """Loads a file whose top level is a flat list of pairs (liblist.gam style)."""
        return KeyValue.parse_document(KeyValue._read(file_path), source=str(file_path))

    @staticmethod
    def parse_text(content: str, source: Optional[str] = None) -> "KeyValue":
        """
        Parses KeyValues text and returns the first top-level node,
        e.g. "AppState" for an app manifest.
        """
        document = KeyValue.parse_document(content, source)
        if not document.children:
            raise ParseError("Document has no root node", source)
        return document.children[0]

    @staticmethod
    def parse_document(content: str, source: Optional[str] = None) -> "KeyValue":
        """
        Parses KeyValues text into a nameless node holding every top-level pair.
        Raises ParseError on unbalanced braces or a key without a value.
        """
        if content.startswith("\ufeff"):
            content = content[1:]

        stack: List[Tuple[Optional[str], List[KeyValue]]] = [(None, [])]
        key = None

        for match in _TOKEN_PATTERN.finditer(content):
            comment, quoted, struct, bare, stray_quote = match.groups()
            if comment is not None:
                continue
            if stray_quote is not None:
                raise ParseError(f"Unterminated string at offset {match.start()}", source)

            if struct == "{":
                if key is None:
                    raise ParseError(f"Unexpected '{{' at offset {match.start()}", source)
                stack.append((key, []))
                key = None

            elif struct == "}":
                if key is not None:
                    raise ParseError(f"Key '{key}' has no value", source)
                if len(stack) == 1:
                    raise ParseError(f"Unexpected '}}' at offset {match.start()}", source)
                name, children = stack.pop()
                stack[-1][1].append(KeyValue(name, children=children))

            else:
                token = _unescape(quoted) if quoted is not None else bare
                if key is None:
                    # [$WIN32] style platform conditionals trail a value
                    if quoted is None and token.startswith("[") and token.endswith("]"):
                        continue
                    key = token
                else:
                    stack[-1][1].append(KeyValue(key, value=token))
                    key = None

        if len(stack) != 1:
            raise ParseError(f"Unterminated block '{stack[-1][0]}'", source)
        if key is not None:
            raise ParseError(f"Key '{key}' has no value", source)

        return KeyValue(children=stack[0][1])

    @staticmethod
    def _read(file_path: str) -> str:
        try:
            with open(file_path, "r", encoding="utf-8-sig") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise ParseError(f"Unreadable encoding: {e}", str(file_path)) from e
        except OSError as e:
            raise ParseError(f"Failed to read file: {e}", str(file_path)) from e


class _MissingKeyValue(KeyValue):
    """Placeholder returned for children that do not exist."""

    def __init__(self):
        super().__init__()

    @property
    def is_missing(self) -> bool:
        return True

    def __getitem__(self, key: str) -> "KeyValue":
        return self

    def __bool__(self) -> bool:
        return False

    def __repr__(self):
        return "KeyValue.MISSING"


MISSING = _MissingKeyValue()
