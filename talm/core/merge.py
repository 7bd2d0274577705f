"""Deep merge shared by value layering and full-config assembly."""
import copy
from collections.abc import Mapping
from typing import Any, Dict, Iterable


def deep_merge(base: Mapping, overlay: Mapping) -> Dict[str, Any]:
    """Overlay *overlay* onto *base* and return a new dict.

    Mappings present on both sides are merged key-wise; any other value
    (scalars, lists, or a type mismatch between the two sides) is replaced
    by the overlay value. Key order follows *base*, with new keys appended
    in overlay order. Neither input is modified.
    """
    merged: Dict[str, Any] = {key: copy.deepcopy(value) for key, value in base.items()}

    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def merge_layers(layers: Iterable[Mapping]) -> Dict[str, Any]:
    """Merge *layers* ordered from lowest to highest precedence."""
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged = deep_merge(merged, layer)
    return merged
