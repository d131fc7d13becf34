"""Key management provider capability."""

from abc import ABC, abstractmethod

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

from key_sync.store import MapKey, ProviderStatus


class KeyManagementProvider(ABC):
    """A backend that fetches certificates and keys from one kind of key store.

    A provider is rebuilt from declarative configuration on every reconcile
    cycle. The only state that outlives a cycle is what it writes to the
    shared store it was constructed with.
    """

    @abstractmethod
    async def get_certificates(
        self,
    ) -> tuple[dict[MapKey, list[x509.Certificate]], ProviderStatus]:
        """Return the enabled certificate chains and a status document.

        Raises an exception if any configured certificate cannot be fetched
        or parsed; no partial result is returned.
        """

    @abstractmethod
    async def get_keys(self) -> tuple[dict[MapKey, PublicKeyTypes], ProviderStatus]:
        """Return the enabled public keys and a status document.

        Raises an exception if any configured key cannot be fetched or parsed;
        no partial result is returned.
        """

    @abstractmethod
    def is_refreshable(self) -> bool:
        """Return True if periodically fetching again may yield new material."""

    async def close(self) -> None:
        """Release resources held by the provider, such as network clients."""
