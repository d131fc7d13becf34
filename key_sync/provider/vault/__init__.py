"""Vault-backed key management provider.

The provider talks to the vault through the VaultClient capability so that
tests and other backends can substitute the Azure SDK adapter.
"""

from .client import (
    CertificateBundle,
    KeyBundle,
    SecretBundle,
    VaultClient,
    VersionItem,
    get_object_version,
)
from .provider import (
    PROVIDER_NAME,
    ObjectReference,
    VaultProvider,
    VaultProviderConfig,
    VaultProviderFactory,
)

__all__ = [
    "PROVIDER_NAME",
    "CertificateBundle",
    "KeyBundle",
    "ObjectReference",
    "SecretBundle",
    "VaultClient",
    "VaultProvider",
    "VaultProviderConfig",
    "VaultProviderFactory",
    "VersionItem",
    "get_object_version",
]
