"""Parser for inline ``--set`` style value assignments.

Supported forms (one category per ``SetKind``)::

    --set          a.b=1,c=true,list={x,y},items[1].name=foo
    --set-string   version=010
    --set-file     motd=./motd.txt
    --set-json     extra={"a":[1,2]},flags=[true]
    --set-literal  banner=a,b,c=d

Keys are dotted paths. ``\\.`` keeps a literal dot inside a key and
``\\,`` keeps a literal comma inside a value.
"""
import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from talm.core.errors import ValueParseError

MAX_INDEX = 65536

_INT_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")

PathSegment = Union[str, int]


class SetKind(str, Enum):
    """Inline assignment category, named after its command line flag."""
    PLAIN = "set"
    STRING = "set-string"
    FILE = "set-file"
    JSON = "set-json"
    LITERAL = "set-literal"


def typed_value(raw: str) -> Any:
    """Convert a ``--set`` scalar into bool, None, int or str."""
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if raw == "null":
        return None
    if _INT_RE.match(raw):
        return int(raw)
    return raw


def read_value_file(path: str) -> str:
    """Return the verbatim contents of a ``--set-file`` path."""
    try:
        return Path(path).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise ValueParseError(f"failed to read file {path!r}: {e}") from e


def parse_key(raw: str) -> List[PathSegment]:
    """Split a dotted key into map keys (str) and list indexes (int).

    Raises:
        ValueParseError: If the key is empty, has empty segments or a
            malformed index.
    """
    segments: List[PathSegment] = []
    name = ""
    # True once the current segment has a name or an index
    started = False
    pos = 0

    while pos < len(raw):
        char = raw[pos]
        if char == "\\":
            if pos + 1 >= len(raw):
                raise ValueParseError(f"key {raw!r} ends with an escape character")
            name += raw[pos + 1]
            started = True
            pos += 2
            continue
        if char == ".":
            if not started:
                raise ValueParseError(f"key {raw!r} has an empty segment")
            if name:
                segments.append(name)
            name = ""
            started = False
            pos += 1
            continue
        if char == "[":
            if not name and not started:
                raise ValueParseError(f"key {raw!r} has an index without a name")
            if name:
                segments.append(name)
                name = ""
            end = raw.find("]", pos)
            if end == -1:
                raise ValueParseError(f"key {raw!r} has an unterminated index")
            index_text = raw[pos + 1:end]
            if not index_text.isdigit():
                raise ValueParseError(f"key {raw!r} has an invalid index {index_text!r}")
            index = int(index_text)
            if index >= MAX_INDEX:
                raise ValueParseError(
                    f"key {raw!r} index {index} exceeds the maximum of {MAX_INDEX - 1}"
                )
            segments.append(index)
            started = True
            pos = end + 1
            if pos < len(raw) and raw[pos] not in ".[":
                raise ValueParseError(f"key {raw!r} has unexpected data after an index")
            continue
        if char == "]":
            raise ValueParseError(f"key {raw!r} has an unbalanced ']'")
        if started and not name:
            # a name directly after an index, e.g. ``a[0]b``
            raise ValueParseError(f"key {raw!r} has unexpected data after an index")
        name += char
        started = True
        pos += 1

    if not started:
        raise ValueParseError(f"key {raw!r} has an empty segment" if raw else "empty key")
    if name:
        segments.append(name)
    return segments


def assign(target: Dict[str, Any], path: List[PathSegment], value: Any) -> None:
    """Set *value* at *path* inside *target*, creating containers as needed."""
    container: Any = target
    for position, segment in enumerate(path):
        is_last = position == len(path) - 1

        if isinstance(segment, int):
            while len(container) <= segment:
                container.append(None)
        if is_last:
            container[segment] = value
            return

        child = container.get(segment) if isinstance(segment, str) else container[segment]
        if isinstance(path[position + 1], int):
            if not isinstance(child, list):
                child = []
        elif not isinstance(child, dict):
            child = {}
        container[segment] = child
        container = child


class SetParser:
    """Parses one category of inline assignments into a values mapping."""

    def __init__(
        self,
        kind: SetKind,
        reader: Optional[Callable[[str], str]] = None,
    ):
        self.kind = SetKind(kind)
        self.reader = reader or read_value_file

    def parse(self, text: str) -> Dict[str, Any]:
        """Parse *text* into a fresh mapping."""
        result: Dict[str, Any] = {}
        self.parse_into(text, result)
        return result

    def parse_into(self, text: str, target: Dict[str, Any]) -> None:
        """Apply every assignment in *text* to *target*, left to right."""
        if self.kind is SetKind.LITERAL:
            key, separator, value = text.partition("=")
            if not separator:
                raise ValueParseError(f"key {key!r} has no value")
            assign(target, parse_key(key), value)
            return

        pos = 0
        while pos < len(text):
            key, pos = self._read_key(text, pos)
            path = parse_key(key)
            value, pos = self._read_value(text, pos, key)
            assign(target, path, value)

    @staticmethod
    def _read_key(text: str, pos: int) -> Tuple[str, int]:
        start = pos
        while pos < len(text):
            char = text[pos]
            if char == "\\":
                pos += 2
                continue
            if char == "=":
                return text[start:pos], pos + 1
            if char == ",":
                raise ValueParseError(f"key {text[start:pos]!r} has no value")
            pos += 1
        raise ValueParseError(f"key {text[start:]!r} has no value")

    def _read_value(self, text: str, pos: int, key: str) -> Tuple[Any, int]:
        if self.kind is SetKind.JSON:
            return self._read_json(text, pos, key)

        if self.kind is not SetKind.FILE and pos < len(text) and text[pos] == "{":
            items, pos = self._read_list(text, pos + 1, key)
            return [self._convert(item) for item in items], pos

        raw, pos = _read_until(text, pos, ",")
        return self._convert(raw), _skip_separator(text, pos, key)

    def _read_list(self, text: str, pos: int, key: str) -> Tuple[List[str], int]:
        items: List[str] = []
        current = ""
        while pos < len(text):
            char = text[pos]
            if char == "\\" and pos + 1 < len(text):
                current += text[pos + 1]
                pos += 2
                continue
            if char == ",":
                items.append(current)
                current = ""
            elif char == "}":
                if current or items:
                    items.append(current)
                return items, _skip_separator(text, pos + 1, key)
            else:
                current += char
            pos += 1
        raise ValueParseError(f"list value for key {key!r} is missing a closing '}}'")

    @staticmethod
    def _read_json(text: str, pos: int, key: str) -> Tuple[Any, int]:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        try:
            value, end = json.JSONDecoder().raw_decode(text, pos)
        except ValueError as e:
            raise ValueParseError(f"invalid JSON value for key {key!r}: {e}") from e
        return value, _skip_separator(text, end, key)

    def _convert(self, raw: str) -> Any:
        if self.kind is SetKind.PLAIN:
            return typed_value(raw)
        if self.kind is SetKind.FILE:
            return self.reader(raw)
        return raw


def _read_until(text: str, pos: int, stop: str) -> Tuple[str, int]:
    """Read an escaped scalar up to the next unescaped *stop* character."""
    value = ""
    while pos < len(text):
        char = text[pos]
        if char == "\\" and pos + 1 < len(text):
            value += text[pos + 1]
            pos += 2
            continue
        if char == stop:
            break
        value += char
        pos += 1
    return value, pos


def _skip_separator(text: str, pos: int, key: str) -> int:
    if pos >= len(text):
        return pos
    if text[pos] != ",":
        raise ValueParseError(f"unexpected data after the value of key {key!r}")
    return pos + 1
