"""Store module for holding retrieved key material."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from .map_key import MapKey

CertificateMap = Mapping[MapKey, list[x509.Certificate]]
KeyMap = Mapping[MapKey, PublicKeyTypes]


@dataclass(frozen=True)
class PublicKeyEntry:
    """A public key along with the provider backend that retrieved it."""

    key: PublicKeyTypes
    provider_type: str


class KeyStore(ABC):
    """Abstract base class for the process wide key material store.

    Material is grouped by the identity of the resource whose provider
    retrieved it. Implementations must allow concurrent reconcile cycles for
    different resources to insert and delete without any locking by callers.
    """

    @abstractmethod
    def set_certificates(self, resource: str, certificates: CertificateMap) -> None:
        """Merge certificates into the material already stored for a resource."""

    @abstractmethod
    def get_certificates(self, resource: str) -> dict[MapKey, list[x509.Certificate]]:
        """Return a copy of the certificates stored for a resource."""

    @abstractmethod
    def delete_certificate(self, resource: str, key: MapKey) -> None:
        """Remove a single certificate chain from a resource."""

    @abstractmethod
    def delete_certificates(self, resource: str) -> None:
        """Remove all certificates stored for a resource."""

    @abstractmethod
    def set_keys(self, resource: str, provider_type: str, keys: KeyMap) -> None:
        """Merge public keys into the material already stored for a resource."""

    @abstractmethod
    def get_keys(self, resource: str) -> dict[MapKey, PublicKeyEntry]:
        """Return a copy of the public keys stored for a resource."""

    @abstractmethod
    def delete_key(self, resource: str, key: MapKey) -> None:
        """Remove a single public key from a resource."""

    @abstractmethod
    def delete_keys(self, resource: str) -> None:
        """Remove all public keys stored for a resource."""

    @abstractmethod
    def set_error(self, resource: str, error: Exception) -> None:
        """Record that the last fetch for a resource failed.

        Previously retrieved material is left in place.
        """

    @abstractmethod
    def get_error(self, resource: str) -> Exception | None:
        """Return the error of the last failed fetch for a resource, if any."""

    @abstractmethod
    def flatten_certificates(self) -> list[x509.Certificate]:
        """Return every stored certificate across all resources."""

    @abstractmethod
    def flatten_keys(self) -> list[PublicKeyEntry]:
        """Return every stored public key across all resources."""

    def save(
        self,
        resource: str,
        provider_type: str,
        keys: KeyMap,
        certificates: CertificateMap,
    ) -> None:
        """Store the result of a successful fetch and clear any previous error."""
        self.set_certificates(resource, certificates)
        self.set_keys(resource, provider_type, keys)
        self.clear_error(resource)

    @abstractmethod
    def clear_error(self, resource: str) -> None:
        """Forget the error recorded for a resource."""

    def delete_resource(self, resource: str) -> None:
        """Remove all material and errors recorded for a resource."""
        self.delete_certificates(resource)
        self.delete_keys(resource)
        self.clear_error(resource)
