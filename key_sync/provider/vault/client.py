"""Vault client capability used by the vault-backed provider.

The client hides the wire protocol of a concrete key store. Bundles mirror the
shape of vault responses, where any attribute may be missing, and the provider
validates them before use.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
import datetime
from typing import Any


@dataclass
class SecretBundle:
    """A combined certificate and private key bundle fetched as a secret."""

    id: str | None = None
    """Full identifier of the secret version, ending in the version."""

    value: str | None = None
    """The bundle contents, PEM text or base64 encoded PKCS#12."""

    content_type: str | None = None
    """The content type of value."""

    enabled: bool | None = None
    """Whether the secret version is enabled."""


@dataclass
class CertificateBundle:
    """Certificate metadata, available even when the secret is disabled."""

    id: str | None = None
    enabled: bool | None = None


@dataclass
class KeyBundle:
    """A key version with its public JSON Web Key."""

    id: str | None = None

    key: dict[str, Any] | None = None
    """JSON Web Key fields, binary values base64url encoded."""

    enabled: bool | None = None


@dataclass
class VersionItem:
    """One element of a version listing page."""

    id: str | None = None
    created_on: datetime.datetime | None = None
    enabled: bool | None = None


class VaultClient(ABC):
    """Abstract async access to one vault.

    Failed requests raise VaultRequestError carrying the HTTP status code and
    response body. An empty version means the current version.
    """

    @abstractmethod
    async def get_secret(self, name: str, version: str) -> SecretBundle:
        """Fetch a secret (combined certificate bundle) version."""

    @abstractmethod
    async def get_certificate(self, name: str, version: str) -> CertificateBundle:
        """Fetch certificate metadata for a version."""

    @abstractmethod
    def list_certificate_versions(
        self, name: str
    ) -> AsyncIterator[Sequence[VersionItem]]:
        """Yield pages of certificate versions, in no particular order."""

    @abstractmethod
    async def get_key(self, name: str, version: str) -> KeyBundle:
        """Fetch a key version."""

    @abstractmethod
    def list_key_versions(self, name: str) -> AsyncIterator[Sequence[VersionItem]]:
        """Yield pages of key versions, in no particular order."""

    async def close(self) -> None:
        """Release any network resources held by the client."""


def get_object_version(object_id: str) -> str:
    """Return the version of a vault object from its identifier.

    Example: https://myvault.vault.azure.net/secrets/cert1/1f304204f3624873
    """
    return object_id.rstrip("/").split("/")[-1]
