"""Key management provider with material embedded in its configuration."""

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from mashumaro import DataClassDictMixin, field_options
from mashumaro.exceptions import InvalidFieldValue, MissingField

from key_sync.exceptions import CertificateInvalidError, ConfigException, KeyInvalidError
from key_sync.store import KeyStore, MapKey, ProviderStatus

from .provider import KeyManagementProvider

__all__ = [
    "InlineProvider",
    "InlineProviderConfig",
    "InlineProviderFactory",
]

_LOGGER = logging.getLogger(__name__)

PROVIDER_NAME = "inline"
CERTIFICATE_CONTENT = "certificate"
KEY_CONTENT = "key"

INLINE_KEY = MapKey(name="", version="", enabled=True)
"""Inline material has no name or version."""


@dataclass
class InlineProviderConfig(DataClassDictMixin):
    """Configuration of the inline provider."""

    type: str = PROVIDER_NAME

    content_type: str = field(metadata=field_options(alias="contentType"), default="")
    """Either certificate or key."""

    value: str = ""
    """PEM encoded certificates or a PEM encoded public key."""


class InlineProvider(KeyManagementProvider):
    """Serves certificates or a key given directly in its configuration."""

    def __init__(self, config: InlineProviderConfig) -> None:
        """Initialize InlineProvider."""
        self._config = config

    async def get_certificates(
        self,
    ) -> tuple[dict[MapKey, list[x509.Certificate]], ProviderStatus]:
        """Return the configured certificates, if any."""
        if self._config.content_type != CERTIFICATE_CONTENT:
            return {}, {}
        try:
            certs = x509.load_pem_x509_certificates(self._config.value.encode())
        except ValueError as err:
            raise CertificateInvalidError(
                f"failed to parse inline certificates: {err}"
            ) from err
        _LOGGER.debug("Loaded %d inline certificate(s)", len(certs))
        return {INLINE_KEY: certs}, {}

    async def get_keys(self) -> tuple[dict[MapKey, PublicKeyTypes], ProviderStatus]:
        """Return the configured public key, if any."""
        if self._config.content_type != KEY_CONTENT:
            return {}, {}
        try:
            key = serialization.load_pem_public_key(self._config.value.encode())
        except (ValueError, TypeError) as err:
            raise KeyInvalidError(f"failed to parse inline key: {err}") from err
        return {INLINE_KEY: key}, {}

    def is_refreshable(self) -> bool:
        """Inline material only changes with the configuration."""
        return False


class InlineProviderFactory:
    """Creates an InlineProvider from an untyped configuration document."""

    def __call__(self, config: Mapping[str, Any], store: KeyStore) -> InlineProvider:
        """Parse and validate the configuration, then build the provider."""
        try:
            provider_config = InlineProviderConfig.from_dict(dict(config))
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise ConfigException(
                f"failed to parse inline provider configuration: {err}"
            ) from err
        if provider_config.content_type not in (CERTIFICATE_CONTENT, KEY_CONTENT):
            raise ConfigException(
                f"content type {provider_config.content_type} is not supported, "
                f"expected {CERTIFICATE_CONTENT} or {KEY_CONTENT}"
            )
        if not provider_config.value.strip():
            raise ConfigException("value parameter is not set")
        return InlineProvider(provider_config)
