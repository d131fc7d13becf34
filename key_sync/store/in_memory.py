"""Module for in memory key material store."""

from collections import defaultdict
import logging
import threading

from cryptography import x509

from .map_key import MapKey
from .store import CertificateMap, KeyMap, KeyStore, PublicKeyEntry


_LOGGER = logging.getLogger(__name__)


class InMemoryKeyStore(KeyStore):
    """In-memory implementation of the KeyStore interface.

    Certificates, keys and errors are keyed by resource. A single lock guards
    all maps so reconcile cycles may run on different threads or tasks.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryKeyStore."""
        self._lock = threading.RLock()
        self._certificates: defaultdict[str, dict[MapKey, list[x509.Certificate]]] = (
            defaultdict(dict)
        )
        self._keys: defaultdict[str, dict[MapKey, PublicKeyEntry]] = defaultdict(dict)
        self._errors: dict[str, Exception] = {}

    def set_certificates(self, resource: str, certificates: CertificateMap) -> None:
        """Merge certificates into the material already stored for a resource."""
        _LOGGER.debug(
            "Storing %d certificate chain(s) for %s", len(certificates), resource
        )
        with self._lock:
            current = self._certificates[resource]
            for key, chain in certificates.items():
                current[key] = list(chain)

    def get_certificates(self, resource: str) -> dict[MapKey, list[x509.Certificate]]:
        """Return a copy of the certificates stored for a resource."""
        with self._lock:
            return {
                key: list(chain)
                for key, chain in self._certificates.get(resource, {}).items()
            }

    def delete_certificate(self, resource: str, key: MapKey) -> None:
        """Remove a single certificate chain from a resource."""
        with self._lock:
            if (current := self._certificates.get(resource)) is None:
                return
            if current.pop(key, None) is not None:
                _LOGGER.debug("Removed certificate %s from %s", key, resource)

    def delete_certificates(self, resource: str) -> None:
        """Remove all certificates stored for a resource."""
        with self._lock:
            self._certificates.pop(resource, None)

    def set_keys(self, resource: str, provider_type: str, keys: KeyMap) -> None:
        """Merge public keys into the material already stored for a resource."""
        _LOGGER.debug("Storing %d key(s) for %s", len(keys), resource)
        with self._lock:
            current = self._keys[resource]
            for key, public_key in keys.items():
                current[key] = PublicKeyEntry(key=public_key, provider_type=provider_type)

    def get_keys(self, resource: str) -> dict[MapKey, PublicKeyEntry]:
        """Return a copy of the public keys stored for a resource."""
        with self._lock:
            return dict(self._keys.get(resource, {}))

    def delete_key(self, resource: str, key: MapKey) -> None:
        """Remove a single public key from a resource."""
        with self._lock:
            if (current := self._keys.get(resource)) is None:
                return
            if current.pop(key, None) is not None:
                _LOGGER.debug("Removed key %s from %s", key, resource)

    def delete_keys(self, resource: str) -> None:
        """Remove all public keys stored for a resource."""
        with self._lock:
            self._keys.pop(resource, None)

    def set_error(self, resource: str, error: Exception) -> None:
        """Record that the last fetch for a resource failed."""
        with self._lock:
            self._errors[resource] = error

    def get_error(self, resource: str) -> Exception | None:
        """Return the error of the last failed fetch for a resource, if any."""
        with self._lock:
            return self._errors.get(resource)

    def clear_error(self, resource: str) -> None:
        """Forget the error recorded for a resource."""
        with self._lock:
            self._errors.pop(resource, None)

    def flatten_certificates(self) -> list[x509.Certificate]:
        """Return every stored certificate across all resources."""
        with self._lock:
            return [
                cert
                for chains in self._certificates.values()
                for chain in chains.values()
                for cert in chain
            ]

    def flatten_keys(self) -> list[PublicKeyEntry]:
        """Return every stored public key across all resources."""
        with self._lock:
            return [entry for keys in self._keys.values() for entry in keys.values()]
