"""
The store module holds the certificates and public keys retrieved by key
management providers, grouped by the resource whose provider fetched them.

- Uses MapKey (name, version, enabled) as the key for individual material.
- Shared by every reconcile cycle in the process and passed to providers
  explicitly when they are constructed.
- Consumed by signature verification to look up trusted material.
"""

from .store import KeyStore, PublicKeyEntry
from .in_memory import InMemoryKeyStore
from .map_key import MapKey
from .status import MaterialKind, ProviderStatus, StatusProperty

__all__ = [
    "KeyStore",
    "InMemoryKeyStore",
    "MapKey",
    "MaterialKind",
    "ProviderStatus",
    "PublicKeyEntry",
    "StatusProperty",
]
