"""Node discovery for lookup-backed template helpers."""
from talm.discovery.lookup import LiveLookupProvider, LookupProvider, NullLookupProvider

__all__ = [
    "LiveLookupProvider",
    "LookupProvider",
    "NullLookupProvider",
]
