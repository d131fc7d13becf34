"""Key management provider backed by a key vault.

Certificates are read as combined secret bundles (certificate chain plus the
private key) since the vault certificate object only holds the leaf. Keys are
read as JSON Web Keys. Either may be pinned to a version and may retain a
window of previous versions.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
import json
import logging
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from key_sync.context import fetch_timer
from key_sync.exceptions import (
    AuthenticationException,
    ConfigException,
    FetchException,
    KeySyncException,
    VaultRequestError,
)
from key_sync.store import KeyStore, MapKey, MaterialKind, ProviderStatus, StatusProperty
from key_sync.store.status import format_time, now, status_document
from key_sync.version_history import VersionEntry, VersionHistory

from ..provider import KeyManagementProvider
from .azure import create_azure_client
from .client import (
    SecretBundle,
    VaultClient,
    VersionItem,
    get_object_version,
)
from .parse import parse_certificate_bundle, parse_json_web_key

__all__ = [
    "ObjectReference",
    "VaultProviderConfig",
    "VaultProvider",
    "VaultProviderFactory",
    "SecretOutcome",
    "SecretFetchResult",
    "is_secret_disabled_error",
]

_LOGGER = logging.getLogger(__name__)

PROVIDER_NAME = "vault-backend"

ClientFactory = Callable[[str, str, str], VaultClient]
"""Builds a vault client from the vault address, tenant id and client id."""


@dataclass
class ObjectReference(DataClassDictMixin):
    """A certificate or key in the vault."""

    name: str = ""
    """Name of the object in the vault."""

    version: str = ""
    """Version to fetch, empty for the current version."""

    version_history_limit: int = field(
        metadata=field_options(alias="versionHistoryLimit"), default=0
    )
    """Number of previous versions retained, 0 for only the referenced version."""

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class VaultProviderConfig(DataClassDictMixin):
    """Configuration of the vault-backed provider."""

    type: str = PROVIDER_NAME

    vault_address: str = field(metadata=field_options(alias="vaultAddress"), default="")
    """Address of the vault, e.g. https://myvault.vault.azure.net/"""

    tenant_id: str = field(metadata=field_options(alias="tenantID"), default="")
    """Directory tenant of the workload identity."""

    client_id: str = field(metadata=field_options(alias="clientID"), default="")
    """Client id of the workload identity."""

    resource: str = ""
    """Identity of the resource the provider was built for, used as store key."""

    certificates: list[ObjectReference] = field(default_factory=list)
    keys: list[ObjectReference] = field(default_factory=list)

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True

    def validate(self) -> None:
        """Raise ConfigException if the configuration is unusable."""
        if not self.certificates and not self.keys:
            raise ConfigException("no keyvault certificates or keys configured")
        if not self.vault_address.strip():
            raise ConfigException("vaultAddress is not set")
        if not self.tenant_id.strip():
            raise ConfigException("tenantID is not set")
        if not self.client_id.strip():
            raise ConfigException("clientID is not set")
        for kind, refs in (("certificate", self.certificates), ("key", self.keys)):
            for index, ref in enumerate(refs):
                if not ref.name:
                    raise ConfigException(
                        f"name is not set for the {_ordinal(index + 1)} {kind}"
                    )
                if ref.version_history_limit < 0:
                    raise ConfigException(
                        f"versionHistoryLimit must not be negative for {kind} {ref.name}"
                    )


def _ordinal(number: int) -> str:
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


class SecretOutcome(StrEnum):
    """Result classification of fetching a secret bundle."""

    SUCCESS = "success"
    DISABLED = "disabled"
    FAILED = "failed"


@dataclass
class SecretFetchResult:
    """A secret fetch converted into a tagged outcome."""

    outcome: SecretOutcome
    bundle: SecretBundle | None = None
    error: Exception | None = None


def is_secret_disabled_error(err: Exception) -> bool:
    """Return True if a vault error means the secret version is disabled.

    A disabled secret is reported as a forbidden response with an inner
    error code of SecretDisabled.
    """
    if not isinstance(err, VaultRequestError) or err.status_code != 403:
        return False
    if not err.body:
        return False
    try:
        body = json.loads(err.body)
    except ValueError:
        return False
    if not isinstance(body, dict) or not isinstance(error := body.get("error"), dict):
        return False
    inner = error.get("innererror")
    return (
        error.get("code") == "Forbidden"
        and isinstance(inner, dict)
        and inner.get("code") == "SecretDisabled"
    )


def _status_property(name: str, version: str, enabled: bool) -> StatusProperty:
    return StatusProperty(
        name=name, version=version, enabled=enabled, last_refreshed=format_time(now())
    )


def _version_entry(item: VersionItem) -> VersionEntry | None:
    if not item.id or item.created_on is None or item.enabled is None:
        return None
    return VersionEntry(
        version=get_object_version(item.id),
        created_at=item.created_on,
        enabled=item.enabled,
    )


class VaultProvider(KeyManagementProvider):
    """Fetches certificates and keys from a vault."""

    def __init__(
        self, config: VaultProviderConfig, client: VaultClient, store: KeyStore
    ) -> None:
        """Initialize VaultProvider."""
        self._config = config
        self._client = client
        self._store = store

    @property
    def config(self) -> VaultProviderConfig:
        """Return the provider configuration."""
        return self._config

    async def get_certificates(
        self,
    ) -> tuple[dict[MapKey, list[x509.Certificate]], ProviderStatus]:
        """Return the enabled certificate chains and a status document."""
        certs: dict[MapKey, list[x509.Certificate]] = {}
        properties: list[StatusProperty] = []
        for ref in self._config.certificates:
            with fetch_timer("certificate", ref.name):
                if ref.version_history_limit == 0:
                    await self._fetch_certificate(ref, certs, properties)
                else:
                    await self._fetch_certificate_history(ref, certs, properties)
        return certs, status_document(properties, MaterialKind.CERTIFICATES)

    async def get_keys(self) -> tuple[dict[MapKey, PublicKeyTypes], ProviderStatus]:
        """Return the enabled public keys and a status document."""
        keys: dict[MapKey, PublicKeyTypes] = {}
        properties: list[StatusProperty] = []
        for ref in self._config.keys:
            with fetch_timer("key", ref.name):
                if ref.version_history_limit == 0:
                    await self._fetch_key(ref, keys, properties)
                else:
                    await self._fetch_key_history(ref, keys, properties)
        return keys, status_document(properties, MaterialKind.KEYS)

    def is_refreshable(self) -> bool:
        """Vault contents change over time and are fetched periodically."""
        return True

    async def close(self) -> None:
        """Close the vault client."""
        await self._client.close()

    async def _get_secret(self, name: str, version: str) -> SecretFetchResult:
        try:
            bundle = await self._client.get_secret(name, version)
        except KeySyncException as err:
            if is_secret_disabled_error(err):
                return SecretFetchResult(SecretOutcome.DISABLED, error=err)
            return SecretFetchResult(SecretOutcome.FAILED, error=err)
        return SecretFetchResult(SecretOutcome.SUCCESS, bundle=bundle)

    def _delete_certificate(self, name: str, version: str) -> None:
        self._store.delete_certificate(
            self._config.resource, MapKey(name, version, enabled=True)
        )

    def _delete_key(self, name: str, version: str) -> None:
        self._store.delete_key(self._config.resource, MapKey(name, version, enabled=True))

    def _add_certificates(
        self,
        bundle: SecretBundle,
        name: str,
        certs: dict[MapKey, list[x509.Certificate]],
        properties: list[StatusProperty],
    ) -> None:
        if (
            bundle.enabled is None
            or not bundle.id
            or not bundle.content_type
            or bundle.value is None
        ):
            _LOGGER.warning("Invalid secret bundle for certificate %s, skipped", name)
            return
        version = get_object_version(bundle.id)
        if not bundle.enabled:
            _LOGGER.info("Certificate %s version %s is disabled", name, version)
            self._delete_certificate(name, version)
            properties.append(_status_property(name, version, False))
            return
        chain = parse_certificate_bundle(bundle.value, bundle.content_type, name, version)
        certs[MapKey(name, version, enabled=True)] = chain
        properties.extend(_status_property(name, version, True) for _ in chain)
        _LOGGER.debug("Fetched certificate %s version %s", name, version)

    async def _fetch_certificate(
        self,
        ref: ObjectReference,
        certs: dict[MapKey, list[x509.Certificate]],
        properties: list[StatusProperty],
    ) -> None:
        result = await self._get_secret(ref.name, ref.version)
        match result:
            case SecretFetchResult(
                outcome=SecretOutcome.SUCCESS, bundle=SecretBundle() as bundle
            ):
                self._add_certificates(bundle, ref.name, certs, properties)
            case SecretFetchResult(outcome=SecretOutcome.DISABLED):
                await self._handle_disabled_certificate(ref, properties)
            case SecretFetchResult(outcome=SecretOutcome.FAILED):
                raise FetchException(
                    f"failed to get secret objectName:{ref.name}, "
                    f"objectVersion:{ref.version}, error: {result.error}"
                ) from result.error

    async def _handle_disabled_certificate(
        self, ref: ObjectReference, properties: list[StatusProperty]
    ) -> None:
        try:
            cert_bundle = await self._client.get_certificate(ref.name, ref.version)
        except KeySyncException as err:
            raise FetchException(
                f"failed to get certificate objectName:{ref.name}, "
                f"objectVersion:{ref.version}, error: {err}"
            ) from err
        if cert_bundle.enabled is None or not cert_bundle.id:
            _LOGGER.warning(
                "Invalid certificate bundle for disabled certificate %s", ref.name
            )
            return
        version = get_object_version(cert_bundle.id)
        _LOGGER.info("Certificate %s version %s is disabled", ref.name, version)
        self._delete_certificate(ref.name, version)
        properties.append(_status_property(ref.name, version, False))

    async def _fetch_certificate_history(
        self,
        ref: ObjectReference,
        certs: dict[MapKey, list[x509.Certificate]],
        properties: list[StatusProperty],
    ) -> None:
        history = await self._version_history(
            self._client.list_certificate_versions, "certificate", ref.name
        )
        trimmed = history.trim(ref.version_history_limit, ref.version)
        if not trimmed:
            _LOGGER.warning(
                "No versions of certificate %s retained (version '%s')",
                ref.name,
                ref.version,
            )
            return
        for entry in trimmed:
            if not entry.enabled:
                self._delete_certificate(ref.name, entry.version)
                properties.append(_status_property(ref.name, entry.version, False))
                continue
            result = await self._get_secret(ref.name, entry.version)
            match result:
                case SecretFetchResult(
                    outcome=SecretOutcome.SUCCESS, bundle=SecretBundle() as bundle
                ):
                    self._add_certificates(bundle, ref.name, certs, properties)
                case SecretFetchResult(outcome=SecretOutcome.DISABLED):
                    # Disabled after the version listing was fetched
                    self._delete_certificate(ref.name, entry.version)
                    properties.append(_status_property(ref.name, entry.version, False))
                case SecretFetchResult(outcome=SecretOutcome.FAILED):
                    raise FetchException(
                        f"failed to get secret objectName:{ref.name}, "
                        f"objectVersion:{entry.version}, error: {result.error}"
                    ) from result.error

    async def _fetch_key(
        self,
        ref: ObjectReference,
        keys: dict[MapKey, PublicKeyTypes],
        properties: list[StatusProperty],
    ) -> None:
        try:
            bundle = await self._client.get_key(ref.name, ref.version)
        except KeySyncException as err:
            raise FetchException(
                f"failed to get key objectName:{ref.name}, "
                f"objectVersion:{ref.version}, error: {err}"
            ) from err
        if bundle.enabled is None or not bundle.id:
            _LOGGER.warning("Invalid key bundle for key %s, skipped", ref.name)
            return
        version = get_object_version(bundle.id)
        if not bundle.enabled:
            _LOGGER.info("Key %s version %s is disabled", ref.name, version)
            self._delete_key(ref.name, version)
            properties.append(_status_property(ref.name, version, False))
            return
        keys[MapKey(ref.name, version, enabled=True)] = parse_json_web_key(bundle.key)
        properties.append(_status_property(ref.name, version, True))
        _LOGGER.debug("Fetched key %s version %s", ref.name, version)

    async def _fetch_key_history(
        self,
        ref: ObjectReference,
        keys: dict[MapKey, PublicKeyTypes],
        properties: list[StatusProperty],
    ) -> None:
        history = await self._version_history(
            self._client.list_key_versions, "key", ref.name
        )
        trimmed = history.trim(ref.version_history_limit, ref.version)
        if not trimmed:
            _LOGGER.warning(
                "No versions of key %s retained (version '%s')", ref.name, ref.version
            )
            return
        for entry in trimmed:
            if not entry.enabled:
                self._delete_key(ref.name, entry.version)
                properties.append(_status_property(ref.name, entry.version, False))
                continue
            await self._fetch_key(
                ObjectReference(name=ref.name, version=entry.version), keys, properties
            )

    async def _version_history(
        self, list_versions: Callable[..., Any], kind: str, name: str
    ) -> VersionHistory:
        entries: list[VersionEntry] = []
        try:
            async for page in list_versions(name):
                for item in page:
                    if (entry := _version_entry(item)) is None:
                        _LOGGER.warning(
                            "Invalid %s version item for %s, skipped: %s",
                            kind,
                            name,
                            item,
                        )
                        continue
                    entries.append(entry)
        except KeySyncException as err:
            raise FetchException(
                f"failed to list {kind} versions objectName:{name}, error: {err}"
            ) from err
        return VersionHistory.from_entries(entries)


class VaultProviderFactory:
    """Creates a VaultProvider from an untyped configuration document."""

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        """Initialize VaultProviderFactory."""
        self._client_factory = client_factory or create_azure_client

    def __call__(self, config: Mapping[str, Any], store: KeyStore) -> VaultProvider:
        """Parse and validate the configuration, then build the provider."""
        try:
            provider_config = VaultProviderConfig.from_dict(dict(config))
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise ConfigException(
                f"failed to parse vault-backend provider configuration: {err}"
            ) from err
        provider_config.validate()
        _LOGGER.debug(
            "Creating vault client for %s", provider_config.vault_address.strip()
        )
        try:
            client = self._client_factory(
                provider_config.vault_address.strip(),
                provider_config.tenant_id.strip(),
                provider_config.client_id.strip(),
            )
        except AuthenticationException:
            raise
        except (KeySyncException, ValueError) as err:
            raise AuthenticationException(
                f"failed to create keyvault client: {err}"
            ) from err
        return VaultProvider(provider_config, client, store)
