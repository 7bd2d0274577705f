"""Node resource payloads returned by lookups."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List


@dataclass
class ResourcePayload:
    """One resource as reported by the node (metadata + spec)."""
    kind: str
    namespace: str
    id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    spec: Any = None

    @classmethod
    def from_dict(cls, kind: str, data: Dict[str, Any]) -> "ResourcePayload":
        """Build from one ``talosctl get -o json`` object."""
        metadata = data.get("metadata") or {}
        return cls(
            kind=kind,
            namespace=metadata.get("namespace", ""),
            id=str(metadata.get("id", "")),
            metadata=metadata,
            spec=data.get("spec"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Template-facing form: ``{"metadata": ..., "spec": ...}``."""
        return {"metadata": dict(self.metadata), "spec": self.spec}


class ResourceList:
    """Result of a list lookup, exposing payload dicts as ``items``.

    Not a mapping on purpose: templates read ``lookup("routes", "", "").items``
    and a dict would resolve ``items`` to its method.
    """

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def __repr__(self) -> str:
        return f"ResourceList({len(self.items)} items)"
