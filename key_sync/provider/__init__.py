"""Key management providers and the registry used to build them by type."""

from .factory import ProviderFactory, ProviderRegistry
from .inline import InlineProvider, InlineProviderFactory
from .provider import KeyManagementProvider
from .vault import VaultProvider, VaultProviderFactory

__all__ = [
    "InlineProvider",
    "InlineProviderFactory",
    "KeyManagementProvider",
    "ProviderFactory",
    "ProviderRegistry",
    "VaultProvider",
    "VaultProviderFactory",
    "default_provider_registry",
]


def default_provider_registry() -> ProviderRegistry:
    """Return a registry holding the built in provider backends."""
    registry = ProviderRegistry()
    registry.register("vault-backend", VaultProviderFactory())
    registry.register("inline", InlineProviderFactory())
    return registry
