"""KeyManagementProvider reconciler.

The reconciler is invoked once per resource event (create, spec change,
delete) or requeue. It builds the configured refresher, runs a single cycle
and hands the result back to the caller, whose retry policy handles errors.

Key Concepts:
    - Refresher: Performs a cycle, fetching material and writing status
    - Store: Process wide map of retrieved certificates and keys
"""

import logging
from typing import Any

from key_sync.cluster import ResourceClient
from key_sync.config import ReconcilerConfig, StatusConfig
from key_sync.exceptions import ReconcileError
from key_sync.manifest import NamedResource
from key_sync.provider import ProviderRegistry, default_provider_registry
from key_sync.refresh import (
    ReconcileResult,
    RefresherRegistry,
    default_refresher_registry,
)
from key_sync.store import KeyStore

__all__ = [
    "KeyManagementProviderReconciler",
]

_LOGGER = logging.getLogger(__name__)


class KeyManagementProviderReconciler:
    """Reconciles KeyManagementProvider resources into the key store."""

    def __init__(
        self,
        client: ResourceClient | None,
        store: KeyStore,
        providers: ProviderRegistry | None = None,
        refreshers: RefresherRegistry | None = None,
        config: ReconcilerConfig | None = None,
        status_config: StatusConfig | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Access to resources in the cluster
            store: The shared store receiving retrieved material
            providers: Provider backends, the built in ones when unset
            refreshers: Refresher implementations, the built in ones when unset
            config: Selects the refresher used for each cycle
            status_config: Controls how resource status is written
        """
        self._client = client
        self._store = store
        self._providers = providers or default_provider_registry()
        self._refreshers = refreshers or default_refresher_registry()
        self._config = config or ReconcilerConfig()
        self._status_config = status_config or StatusConfig()

    async def reconcile(self, request: NamedResource) -> ReconcileResult:
        """Reconcile the resource named by the request."""
        _LOGGER.debug("Reconcile request for %s", request)
        return await self.reconcile_with_config(
            {
                "type": self._config.refresher_type,
                "client": self._client,
                "request": request,
                "store": self._store,
                "providers": self._providers,
                "status_config": self._status_config,
            }
        )

    async def reconcile_with_config(self, config: dict[str, Any]) -> ReconcileResult:
        """Run one cycle with an explicit refresher configuration."""
        request = config.get("request")
        name = request.namespaced_name if isinstance(request, NamedResource) else ""
        if config.get("client") is None:
            raise ReconcileError(name, "client is nil")

        refresher = self._refreshers.create_refresher_from_config(config)
        try:
            await refresher.refresh()
        except Exception as err:
            _LOGGER.error("Error refreshing %s: %s", request, err)
            raise ReconcileError(name, str(err)) from err
        return refresher.get_result()
