"""Registry of refresher implementations."""

from collections.abc import Mapping
import logging
from typing import Any, Protocol

from key_sync.exceptions import (
    ConfigException,
    RefresherNotFoundError,
    RegistrationError,
)

from .refresher import Refresher

_LOGGER = logging.getLogger(__name__)


class RefresherFactory(Protocol):
    """Builds a refresher from a configuration mapping."""

    def __call__(self, config: Mapping[str, Any]) -> Refresher:
        """Return a new refresher or raise ConfigException."""


class RefresherRegistry:
    """Maps a refresher type name to the factory that constructs it."""

    def __init__(self) -> None:
        """Initialize an empty RefresherRegistry."""
        self._factories: dict[str, RefresherFactory] = {}

    def register(self, name: str, factory: RefresherFactory | None) -> None:
        """Register a factory under a refresher type name."""
        if factory is None:
            raise RegistrationError(f"Refresher factory {name} cannot be None")
        if name in self._factories:
            raise RegistrationError(f"Refresher factory named {name} already registered")
        _LOGGER.debug("Registering refresher factory %s", name)
        self._factories[name] = factory

    def create_refresher_from_config(self, config: Mapping[str, Any]) -> Refresher:
        """Create the refresher named by the `type` entry of the config."""
        refresher_type = config.get("type")
        if not isinstance(refresher_type, str) or not refresher_type:
            raise ConfigException("refresher type is not a non-empty string")
        if not (factory := self._factories.get(refresher_type)):
            raise RefresherNotFoundError(
                f"refresher factory with name {refresher_type} not found"
            )
        return factory(config)

    def names(self) -> list[str]:
        """Return the registered refresher type names."""
        return sorted(self._factories)
