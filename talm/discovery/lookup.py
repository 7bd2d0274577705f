"""Lookup providers: live node facts or an offline stand-in."""
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple

from talm.core.logger import get_logger
from talm.models.resource import ResourcePayload
from talm.services.talosctl import NodeSession, ResourceNotFound

logger = get_logger(__name__)


class LookupProvider(ABC):
    """Source of node resources for lookup-backed template helpers.

    Used as a context manager so the underlying connection is released
    even when rendering fails.
    """

    enabled: bool = True

    @abstractmethod
    def lookup(self, kind: str, namespace: str = "", resource_id: str = "") -> Optional[ResourcePayload]:
        """Return one resource, or None when it does not exist."""

    @abstractmethod
    def list(self, kind: str, namespace: str = "") -> Iterator[ResourcePayload]:
        """Iterate all resources of *kind*."""

    def open(self):
        pass

    def close(self):
        pass

    def __enter__(self) -> "LookupProvider":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class NullLookupProvider(LookupProvider):
    """Offline provider: lookups are disabled and every query finds nothing."""

    enabled = False

    def lookup(self, kind: str, namespace: str = "", resource_id: str = "") -> Optional[ResourcePayload]:
        logger.debug(f"Lookups disabled (offline): {kind}/{resource_id or '*'}")
        return None

    def list(self, kind: str, namespace: str = "") -> Iterator[ResourcePayload]:
        logger.debug(f"Lookups disabled (offline): {kind}/*")
        return iter(())


class LiveLookupProvider(LookupProvider):
    """Provider backed by a NodeSession to a single node.

    Answers are memoized for the lifetime of the provider, so every helper
    in one render sees the same snapshot.
    """

    def __init__(self, session: NodeSession):
        self.session = session
        self._single: Dict[Tuple[str, str, str], Optional[ResourcePayload]] = {}
        self._lists: Dict[Tuple[str, str], List[ResourcePayload]] = {}

    def open(self):
        self.session.connect()

    def close(self):
        self.session.close()
        self._single.clear()
        self._lists.clear()

    def lookup(self, kind: str, namespace: str = "", resource_id: str = "") -> Optional[ResourcePayload]:
        key = (kind, namespace, resource_id)
        if key not in self._single:
            try:
                objects = self.session.get(kind, namespace, resource_id)
            except ResourceNotFound:
                logger.debug(f"Not found on node: {kind}/{resource_id or '*'}")
                objects = []
            self._single[key] = ResourcePayload.from_dict(kind, objects[0]) if objects else None
        return self._single[key]

    def list(self, kind: str, namespace: str = "") -> Iterator[ResourcePayload]:
        key = (kind, namespace)
        if key not in self._lists:
            self._lists[key] = [
                ResourcePayload.from_dict(kind, obj)
                for obj in self.session.list(kind, namespace)
            ]
        yield from self._lists[key]
