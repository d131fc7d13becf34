"""Tests for the KeyManagementProvider reconciler."""

import asyncio
from collections.abc import Mapping
import datetime
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from key_sync.cluster import InMemoryResourceClient
from key_sync.config import ReconcilerConfig
from key_sync.controller import KeyManagementProviderReconciler
from key_sync.exceptions import (
    ConfigException,
    FetchException,
    ReconcileError,
    RefresherNotFoundError,
)
from key_sync.manifest import (
    KeyManagementProvider,
    KeyManagementProviderSpec,
    NamedResource,
)
from key_sync.refresh import ReconcileResult, Refresher, RefresherRegistry
from key_sync.store import InMemoryKeyStore, MapKey


class FailingRefresher(Refresher):
    def __init__(self, config: Mapping[str, Any]) -> None:
        pass

    async def refresh(self) -> None:
        raise FetchException("vault unavailable")

    def get_result(self) -> ReconcileResult:
        return ReconcileResult()


def resource_id(name: str) -> NamedResource:
    return NamedResource("KeyManagementProvider", "default", name)


def inline_certificate(name: str, cert: x509.Certificate) -> KeyManagementProvider:
    return KeyManagementProvider(
        name=name,
        namespace="default",
        spec=KeyManagementProviderSpec(
            type="inline",
            refresh_interval="5m",
            parameters={
                "contentType": "certificate",
                "value": cert.public_bytes(serialization.Encoding.PEM).decode(),
            },
        ),
    )


@pytest.fixture(name="resource_client")
def resource_client_fixture() -> InMemoryResourceClient:
    return InMemoryResourceClient()


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    resource_client: InMemoryResourceClient, key_store: InMemoryKeyStore
) -> KeyManagementProviderReconciler:
    return KeyManagementProviderReconciler(resource_client, key_store)


async def test_reconcile(
    reconciler: KeyManagementProviderReconciler,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    root_cert: x509.Certificate,
) -> None:
    """Test reconciling a resource with the built in registries."""
    resource_client.add(inline_certificate("inline", root_cert))
    result = await reconciler.reconcile(resource_id("inline"))

    # Inline providers are not refreshable
    assert result == ReconcileResult()
    assert key_store.get_certificates("default/inline") == {MapKey("", ""): [root_cert]}
    status = (await resource_client.get(resource_id("inline"))).status
    assert status.is_success


async def test_reconcile_deleted(
    reconciler: KeyManagementProviderReconciler,
    key_store: InMemoryKeyStore,
    root_cert: x509.Certificate,
) -> None:
    """Test reconciling a deleted resource removes its material."""
    key_store.set_certificates("default/gone", {MapKey("", ""): [root_cert]})
    result = await reconciler.reconcile(resource_id("gone"))
    assert not result.requeue
    assert key_store.flatten_certificates() == []


async def test_reconcile_error(
    reconciler: KeyManagementProviderReconciler,
    resource_client: InMemoryResourceClient,
) -> None:
    """Test refresh failures are wrapped for the caller's retry policy."""
    resource_client.add(
        KeyManagementProvider(
            name="broken",
            namespace="default",
            spec=KeyManagementProviderSpec(type="unknown-backend"),
        )
    )
    with pytest.raises(
        ReconcileError, match="Resource default/broken failed to reconcile"
    ) as exc_info:
        await reconciler.reconcile(resource_id("broken"))
    assert exc_info.value.resource_name == "default/broken"
    status = (await resource_client.get(resource_id("broken"))).status
    assert not status.is_success
    assert status.error is not None
    assert "unknown-backend not found" in status.error


async def test_nil_client(key_store: InMemoryKeyStore) -> None:
    """Test a reconciler without a client fails before building a refresher."""
    reconciler = KeyManagementProviderReconciler(None, key_store)
    with pytest.raises(ReconcileError, match="client is nil"):
        await reconciler.reconcile(resource_id("any"))


async def test_custom_refresher(
    resource_client: InMemoryResourceClient, key_store: InMemoryKeyStore
) -> None:
    """Test the configured refresher type is used and its errors wrapped."""
    refreshers = RefresherRegistry()
    refreshers.register("failing", FailingRefresher)
    reconciler = KeyManagementProviderReconciler(
        resource_client,
        key_store,
        refreshers=refreshers,
        config=ReconcilerConfig(refresher_type="failing"),
    )
    with pytest.raises(ReconcileError, match="vault unavailable") as exc_info:
        await reconciler.reconcile(resource_id("any"))
    assert isinstance(exc_info.value.__cause__, FetchException)


async def test_refresher_creation_errors(
    reconciler: KeyManagementProviderReconciler,
    resource_client: InMemoryResourceClient,
) -> None:
    """Test refresher construction errors propagate unchanged."""
    with pytest.raises(RefresherNotFoundError):
        await reconciler.reconcile_with_config(
            {"type": "missing", "client": resource_client}
        )
    with pytest.raises(ConfigException):
        await reconciler.reconcile_with_config({"client": resource_client})


async def test_concurrent_reconcile(
    reconciler: KeyManagementProviderReconciler,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    root_cert: x509.Certificate,
    leaf_cert: x509.Certificate,
) -> None:
    """Test reconciling different resources concurrently."""
    resource_client.add(inline_certificate("first", root_cert))
    resource_client.add(inline_certificate("second", leaf_cert))

    results = await asyncio.gather(
        reconciler.reconcile(resource_id("first")),
        reconciler.reconcile(resource_id("second")),
    )
    assert all(result.requeue_after is None for result in results)
    assert key_store.get_certificates("default/first") == {MapKey("", ""): [root_cert]}
    assert key_store.get_certificates("default/second") == {MapKey("", ""): [leaf_cert]}
    assert sorted(
        cert.subject.rfc4514_string() for cert in key_store.flatten_certificates()
    ) == ["CN=Test Leaf", "CN=Test Root"]


def test_requeue_result() -> None:
    """Test the requeue flag follows the requeue delay."""
    assert ReconcileResult(requeue_after=datetime.timedelta(minutes=5)).requeue
    assert not ReconcileResult().requeue
