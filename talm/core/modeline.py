"""Modeline: the metadata comment line prefixed to rendered output.

Format::

    # talm: nodes=["10.0.0.1"], endpoints=["10.0.0.1"], templates=["templates/controlplane.yaml"]
"""
import json
from dataclasses import dataclass, field
from typing import List, Sequence

MODELINE_PREFIX = "# talm:"
_KEYS = ("nodes", "endpoints", "templates")


@dataclass
class Modeline:
    nodes: List[str] = field(default_factory=list)
    endpoints: List[str] = field(default_factory=list)
    templates: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return generate_modeline(self.nodes, self.endpoints, self.templates)


def _compact(items: Sequence[str]) -> str:
    return json.dumps(list(items), separators=(",", ":"))


def generate_modeline(nodes: Sequence[str], endpoints: Sequence[str], templates: Sequence[str]) -> str:
    return (
        f"{MODELINE_PREFIX} nodes={_compact(nodes)}, "
        f"endpoints={_compact(endpoints)}, templates={_compact(templates)}"
    )


def parse_modeline(line: str) -> Modeline:
    """Parse a modeline back into its three lists.

    Raises:
        ValueError: *line* is not a talm modeline or holds malformed values.
    """
    text = line.strip()
    if not text.startswith(MODELINE_PREFIX):
        raise ValueError("not a talm modeline")

    decoder = json.JSONDecoder()
    rest = text[len(MODELINE_PREFIX):].strip()
    parsed = {}
    while rest:
        key, sep, rest = rest.partition("=")
        key = key.strip()
        if not sep or key not in _KEYS:
            raise ValueError(f"unknown modeline key {key!r}")
        try:
            value, end = decoder.raw_decode(rest)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid value for {key}: {e.msg}") from e
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{key} must be a list of strings")
        parsed[key] = value
        rest = rest[end:].strip()
        if rest.startswith(","):
            rest = rest[1:].strip()
        elif rest:
            raise ValueError(f"unexpected text after {key}: {rest!r}")

    return Modeline(**parsed)
