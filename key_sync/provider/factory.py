"""Registry of key management provider backends."""

from collections.abc import Mapping
import logging
from typing import Any, Protocol

from key_sync.exceptions import ProviderNotFoundError, RegistrationError
from key_sync.store import KeyStore

from .provider import KeyManagementProvider

_LOGGER = logging.getLogger(__name__)


class ProviderFactory(Protocol):
    """Builds a validated provider from an untyped configuration document."""

    def __call__(
        self, config: Mapping[str, Any], store: KeyStore
    ) -> KeyManagementProvider:
        """Return a new provider or raise ConfigException."""


class ProviderRegistry:
    """Maps a provider type name to the factory that constructs it.

    The registry is built explicitly during process start up; registering the
    same name twice or a missing factory is a wiring error.
    """

    def __init__(self) -> None:
        """Initialize an empty ProviderRegistry."""
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory | None) -> None:
        """Register a factory under a provider type name."""
        if factory is None:
            raise RegistrationError(f"Provider factory {name} cannot be None")
        if name in self._factories:
            raise RegistrationError(f"Provider factory named {name} already registered")
        _LOGGER.debug("Registering provider factory %s", name)
        self._factories[name] = factory

    def create(
        self,
        name: str,
        config: Mapping[str, Any],
        store: KeyStore,
        extra: str = "",
    ) -> KeyManagementProvider:
        """Create a provider of the given type from its configuration.

        The `extra` argument identifies an out of process plugin location for
        backends that need one; built in backends ignore it.
        """
        if not (factory := self._factories.get(name)):
            raise ProviderNotFoundError(
                f"Key management provider factory with name {name} not found"
            )
        if extra:
            _LOGGER.debug("Creating provider %s with plugin location %s", name, extra)
        return factory(config, store)

    def names(self) -> list[str]:
        """Return the registered provider type names."""
        return sorted(self._factories)
