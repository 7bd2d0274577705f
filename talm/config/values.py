"""Value layering: chart defaults, values files and inline assignments."""
import copy
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import yaml

from talm.config.set_parser import SetKind, SetParser
from talm.core.errors import ValueFileError
from talm.core.logger import get_logger
from talm.core.merge import merge_layers

logger = get_logger(__name__)


@dataclass(frozen=True)
class SetSpec:
    """One inline assignment argument, e.g. ``SetSpec(SetKind.PLAIN, "a=1,b=2")``."""
    kind: SetKind
    text: str


class ValueSet(Mapping):
    """Read-only view of the merged values of one invocation."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(data) if data else {}

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ValueSet({self._data!r})"

    def get(self, path: str, default: Any = None) -> Any:
        """Return the value at a dotted *path* (``"a.b.c"``), or *default*."""
        current: Any = self._data
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return default
        return current

    def as_dict(self) -> Dict[str, Any]:
        """Return a deep copy that callers (templates) may freely mutate."""
        return copy.deepcopy(self._data)


def load_values_file(path: Union[str, Path], required: bool = True) -> Dict[str, Any]:
    """Load one YAML values file.

    Args:
        path: Values file path
        required: When False a missing file yields an empty mapping

    Raises:
        ValueFileError: File missing (when required), unreadable, invalid YAML
            or not a mapping at the top level.
    """
    values_path = Path(path)
    if not values_path.exists():
        if not required:
            return {}
        raise ValueFileError(f"values file not found: {values_path}")

    try:
        with open(values_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ValueFileError(f"failed to read values file {values_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueFileError(f"invalid YAML in values file {values_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueFileError(
            f"values file {values_path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def build_set_specs(
    values: Sequence[str] = (),
    string_values: Sequence[str] = (),
    file_values: Sequence[str] = (),
    json_values: Sequence[str] = (),
    literal_values: Sequence[str] = (),
) -> List[SetSpec]:
    """Group per-flag argument lists into ordered ``SetSpec`` entries.

    Categories follow Helm's precedence (set-json, set, set-string,
    set-file, set-literal), each in argument order, so a plain ``--set``
    beats ``--set-json`` on the same key.
    """
    specs: List[SetSpec] = []
    for kind, texts in (
        (SetKind.JSON, json_values),
        (SetKind.PLAIN, values),
        (SetKind.STRING, string_values),
        (SetKind.FILE, file_values),
        (SetKind.LITERAL, literal_values),
    ):
        specs.extend(SetSpec(kind, text) for text in texts)
    return specs


def resolve_values(
    defaults_path: Optional[Union[str, Path]],
    value_files: Sequence[Union[str, Path]] = (),
    set_specs: Sequence[SetSpec] = (),
) -> ValueSet:
    """Merge every value source into a ValueSet.

    Precedence, lowest first: chart defaults, each values file in order,
    each inline assignment in order.

    Raises:
        ValueFileError: A values file is missing or malformed
        ValueParseError: An inline assignment is malformed
    """
    layers: List[Dict[str, Any]] = []
    if defaults_path is not None:
        layers.append(load_values_file(defaults_path, required=False))
        logger.debug(f"Loaded chart defaults from {defaults_path}")

    for value_file in value_files:
        layers.append(load_values_file(value_file))
        logger.debug(f"Loaded values file {value_file}")

    merged = merge_layers(layers)

    for spec in set_specs:
        SetParser(spec.kind).parse_into(spec.text, merged)

    return ValueSet(merged)
