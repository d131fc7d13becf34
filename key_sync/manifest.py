"""Representation of KeyManagementProvider cluster resources.

A KeyManagementProvider declares which key store backend to use, how to reach
it, and which certificates and keys to synchronize. The resource status is
written back after every reconcile cycle.
"""

from dataclasses import dataclass, field
import datetime
import logging
from typing import Any

import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import ConfigException

__all__ = [
    "NamedResource",
    "KeyManagementProvider",
    "KeyManagementProviderSpec",
    "KeyManagementProviderStatus",
    "parse_resources",
]

_LOGGER = logging.getLogger(__name__)


# Match a prefix of apiVersion to ensure we have the right type of object.
# We don't check specific versions for forward compatibility on upgrade.
CONFIG_DOMAIN = "config.ratify.deislabs.io"
KEY_MANAGEMENT_PROVIDER_KIND = "KeyManagementProvider"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise ConfigException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise ConfigException(f"Invalid object expected '{version}': {doc}")


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class KeyManagementProviderSpec(BaseManifest):
    """The desired state of a KeyManagementProvider."""

    type: str
    """Registry name of the provider backend, e.g. vault-backend."""

    refresh_interval: str | None = field(
        metadata=field_options(alias="refreshInterval"), default=None
    )
    """Duration between refreshes of a refreshable provider, e.g. 1m30s."""

    parameters: dict[str, Any] = field(default_factory=dict)
    """Provider specific configuration document."""


@dataclass
class KeyManagementProviderStatus(BaseManifest):
    """The observed state of a KeyManagementProvider after the last fetch."""

    is_success: bool = field(metadata=field_options(alias="isSuccess"), default=False)
    """True when the last fetch succeeded."""

    error: str | None = None
    """Full error of the last failed fetch."""

    brief_error: str | None = field(
        metadata=field_options(alias="briefError"), default=None
    )
    """Truncated error for compact display."""

    last_fetched_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastFetchedTime"), default=None
    )
    """Time of the last completed fetch attempt."""

    properties: dict[str, Any] | None = None
    """Provider specific status, keyed by material kind."""


@dataclass
class KeyManagementProvider(BaseManifest):
    """A KeyManagementProvider resource."""

    name: str
    """The name of the resource."""

    namespace: str | None = None
    """The namespace of the resource, unset for cluster scoped resources."""

    generation: int = 1
    """Incremented by the cluster on every spec change."""

    spec: KeyManagementProviderSpec = field(
        default_factory=lambda: KeyManagementProviderSpec(type="")
    )
    """The desired state."""

    status: KeyManagementProviderStatus = field(
        default_factory=KeyManagementProviderStatus
    )
    """The observed state."""

    kind: str = KEY_MANAGEMENT_PROVIDER_KIND

    @property
    def resource_id(self) -> NamedResource:
        """Return the identity of this resource."""
        return NamedResource(self.kind, self.namespace, self.name)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "KeyManagementProvider":
        """Parse a KeyManagementProvider from a raw kubernetes object."""
        _check_version(doc, CONFIG_DOMAIN)
        if doc.get("kind") != KEY_MANAGEMENT_PROVIDER_KIND:
            raise ConfigException(
                f"Invalid {cls.__name__} unexpected kind {doc.get('kind')}: {doc}"
            )
        if not (metadata := doc.get("metadata")):
            raise ConfigException(f"Invalid {cls.__name__} missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise ConfigException(
                f"Invalid {cls.__name__} missing metadata.name: {doc}"
            )
        if not (spec := doc.get("spec")):
            raise ConfigException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not (provider_type := spec.get("type")):
            raise ConfigException(f"Invalid {cls.__name__} missing spec.type: {doc}")
        parameters = spec.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise ConfigException(
                f"Invalid {cls.__name__} spec.parameters must be a mapping: {doc}"
            )
        status = KeyManagementProviderStatus()
        if status_doc := doc.get("status"):
            status = KeyManagementProviderStatus.from_dict(status_doc)
        return cls(
            name=name,
            namespace=metadata.get("namespace"),
            generation=metadata.get("generation", 1),
            spec=KeyManagementProviderSpec(
                type=provider_type,
                refresh_interval=spec.get("refreshInterval"),
                parameters=parameters,
            ),
            status=status,
        )


def parse_resources(content: str) -> list[KeyManagementProvider]:
    """Parse all KeyManagementProvider documents from a YAML stream.

    Documents of other kinds are ignored.
    """
    results = []
    for doc in yaml.safe_load_all(content):
        if not doc:
            continue
        if doc.get("kind") != KEY_MANAGEMENT_PROVIDER_KIND:
            _LOGGER.debug("Skipping document of kind %s", doc.get("kind"))
            continue
        results.append(KeyManagementProvider.parse_doc(doc))
    return results
