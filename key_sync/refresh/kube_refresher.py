"""Refresher driven by KeyManagementProvider resource events."""

from collections.abc import Mapping
import datetime
import logging
import re
from typing import Any

from key_sync.cluster import ResourceClient, write_provider_status
from key_sync.config import StatusConfig
from key_sync.exceptions import (
    ConfigException,
    FetchException,
    KeySyncException,
    ObjectNotFoundError,
)
from key_sync.manifest import KeyManagementProvider, NamedResource
from key_sync.provider import ProviderRegistry
from key_sync.store import KeyStore

from .refresher import ReconcileResult, Refresher

__all__ = [
    "KubeRefresher",
    "parse_duration",
]

_LOGGER = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": datetime.timedelta(microseconds=0.001),
    "us": datetime.timedelta(microseconds=1),
    "µs": datetime.timedelta(microseconds=1),
    "ms": datetime.timedelta(milliseconds=1),
    "s": datetime.timedelta(seconds=1),
    "m": datetime.timedelta(minutes=1),
    "h": datetime.timedelta(hours=1),
}


def parse_duration(value: str) -> datetime.timedelta:
    """Parse a duration string such as 1h30m, 5m, 90s or 250ms."""
    text = value.strip()
    if text == "0":
        return datetime.timedelta()
    if not text or not re.fullmatch(rf"(?:{_DURATION_RE.pattern})+", text):
        raise ConfigException(f"invalid duration {value!r}")
    total = datetime.timedelta()
    for match in _DURATION_RE.finditer(text):
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    return total


class KubeRefresher(Refresher):
    """Fetches material for one resource and writes its status.

    A resource that no longer exists has its material removed from the store.
    """

    def __init__(
        self,
        client: ResourceClient,
        request: NamedResource,
        store: KeyStore,
        providers: ProviderRegistry,
        status_config: StatusConfig | None = None,
    ) -> None:
        """Initialize KubeRefresher."""
        self._client = client
        self._request = request
        self._store = store
        self._providers = providers
        self._status_config = status_config or StatusConfig()
        self._result = ReconcileResult()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "KubeRefresher":
        """Build a refresher from the mapping assembled by the reconciler."""
        missing = [
            key
            for key in ("client", "request", "store", "providers")
            if config.get(key) is None
        ]
        if missing:
            raise ConfigException(
                f"kubeRefresher configuration missing {', '.join(missing)}"
            )
        return cls(
            client=config["client"],
            request=config["request"],
            store=config["store"],
            providers=config["providers"],
            status_config=config.get("status_config"),
        )

    @property
    def resource_key(self) -> str:
        """Return the key material for the resource is stored under."""
        return self._request.namespaced_name

    async def refresh(self) -> None:
        """Run one reconcile cycle for the requested resource."""
        self._result = ReconcileResult()
        try:
            resource = await self._client.get(self._request)
        except ObjectNotFoundError:
            _LOGGER.info(
                "Deletion detected, removing key management provider %s",
                self._request,
            )
            self._store.delete_resource(self.resource_key)
            return

        _LOGGER.info("Reconciling %s", self._request)
        spec = resource.spec
        provider_config: dict[str, Any] = dict(spec.parameters)
        provider_config["type"] = spec.type
        provider_config["resource"] = self.resource_key
        try:
            provider = self._providers.create(spec.type, provider_config, self._store)
        except KeySyncException as err:
            _LOGGER.error("Error creating key management provider %s: %s", self._request, err)
            await self._write_failure(resource, err)
            raise

        try:
            try:
                certificates, cert_status = await provider.get_certificates()
                keys, key_status = await provider.get_keys()
            except KeySyncException as err:
                _LOGGER.error(
                    "Error fetching material for %s: %s", self._request, err
                )
                self._store.set_error(self.resource_key, err)
                await self._write_failure(resource, err)
                raise FetchException(
                    f"failed to fetch material for {self._request}: {err}"
                ) from err
        finally:
            await provider.close()

        self._store.save(self.resource_key, spec.type, keys, certificates)
        _LOGGER.info(
            "%d certificate(s) and %d key(s) saved for %s",
            sum(len(chain) for chain in certificates.values()),
            len(keys),
            self._request,
        )
        await write_provider_status(
            self._client,
            resource,
            is_success=True,
            properties={**cert_status, **key_status},
            config=self._status_config,
        )

        if provider.is_refreshable() and spec.refresh_interval:
            try:
                interval = parse_duration(spec.refresh_interval)
            except ConfigException as err:
                _LOGGER.error("Invalid refresh interval for %s: %s", self._request, err)
                await self._write_failure(resource, err)
                raise
            self._result = ReconcileResult(requeue_after=interval)

    def get_result(self) -> ReconcileResult:
        """Return the result of the last completed refresh."""
        return self._result

    async def _write_failure(
        self, resource: KeyManagementProvider, err: Exception
    ) -> None:
        await write_provider_status(
            self._client, resource, is_success=False, error=err, config=self._status_config
        )
