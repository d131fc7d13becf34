"""Tests for the kube refresher."""

import datetime
from typing import Any

from azure.core.exceptions import ServiceRequestError
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from key_sync.cluster import InMemoryResourceClient
from key_sync.exceptions import ConfigException, FetchException, VaultRequestError
from key_sync.manifest import (
    KeyManagementProvider,
    KeyManagementProviderSpec,
    NamedResource,
)
from key_sync.provider import (
    InlineProviderFactory,
    ProviderRegistry,
    VaultProviderFactory,
)
from key_sync.provider.vault import KeyBundle
from key_sync.provider.vault.azure import AzureVaultClient
from key_sync.refresh import KubeRefresher, parse_duration
from key_sync.store import InMemoryKeyStore, MapKey

from ..fakes import FakeVaultClient, ec_jwk, key_id, pem_secret

RESOURCE_ID = NamedResource("KeyManagementProvider", "gatekeeper-system", "keyvault")
RESOURCE = "gatekeeper-system/keyvault"

VAULT_PARAMETERS: dict[str, Any] = {
    "vaultAddress": "https://myvault.vault.azure.net/",
    "tenantID": "tenant",
    "clientID": "client",
    "certificates": [{"name": "cert1"}],
    "keys": [{"name": "key1"}],
}


@pytest.fixture(name="resource_client")
def resource_client_fixture() -> InMemoryResourceClient:
    return InMemoryResourceClient()


@pytest.fixture(name="providers")
def providers_fixture(vault_client: FakeVaultClient) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(
        "vault-backend", VaultProviderFactory(client_factory=lambda *args: vault_client)
    )
    registry.register("inline", InlineProviderFactory())
    return registry


@pytest.fixture(name="refresher")
def refresher_fixture(
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    providers: ProviderRegistry,
) -> KubeRefresher:
    return KubeRefresher(resource_client, RESOURCE_ID, key_store, providers)


@pytest.fixture(name="populated_vault")
def populated_vault_fixture(
    vault_client: FakeVaultClient, pem_chain: str, leaf_key: ec.EllipticCurvePrivateKey
) -> FakeVaultClient:
    vault_client.secrets[("cert1", "")] = pem_secret("cert1", "v1", pem_chain)
    vault_client.keys[("key1", "")] = KeyBundle(
        id=key_id("key1", "k1"), key=ec_jwk(leaf_key.public_key()), enabled=True
    )
    return vault_client


def add_resource(
    client: InMemoryResourceClient,
    provider_type: str = "vault-backend",
    parameters: dict[str, Any] | None = None,
    refresh_interval: str | None = "1h",
) -> None:
    client.add(
        KeyManagementProvider(
            name="keyvault",
            namespace="gatekeeper-system",
            spec=KeyManagementProviderSpec(
                type=provider_type,
                refresh_interval=refresh_interval,
                parameters=VAULT_PARAMETERS if parameters is None else parameters,
            ),
        )
    )


async def test_refresh(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    populated_vault: FakeVaultClient,
    root_cert: x509.Certificate,
    leaf_cert: x509.Certificate,
) -> None:
    """Test a successful cycle stores material and writes status."""
    add_resource(resource_client)
    await refresher.refresh()

    assert key_store.get_certificates(RESOURCE) == {
        MapKey("cert1", "v1"): [root_cert, leaf_cert]
    }
    keys = key_store.get_keys(RESOURCE)
    assert list(keys) == [MapKey("key1", "k1")]
    assert keys[MapKey("key1", "k1")].provider_type == "vault-backend"
    assert refresher.get_result().requeue_after == datetime.timedelta(hours=1)
    assert populated_vault.closed

    status = (await resource_client.get(RESOURCE_ID)).status
    assert status.is_success
    assert status.error is None
    assert status.last_fetched_time is not None
    assert status.properties is not None
    assert [p["version"] for p in status.properties["certificates"]] == ["v1", "v1"]
    assert status.properties["keys"] == [
        {
            "name": "key1",
            "version": "k1",
            "enabled": True,
            "lastRefreshed": status.properties["keys"][0]["lastRefreshed"],
        }
    ]


async def test_refresh_without_interval(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    populated_vault: FakeVaultClient,
) -> None:
    """Test no requeue without a refresh interval."""
    add_resource(resource_client, refresh_interval=None)
    await refresher.refresh()
    assert not refresher.get_result().requeue


async def test_refresh_not_refreshable(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    leaf_key: ec.EllipticCurvePrivateKey,
) -> None:
    """Test providers that are not refreshable are never requeued."""
    value = leaf_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    add_resource(
        resource_client,
        provider_type="inline",
        parameters={"contentType": "key", "value": value},
    )
    await refresher.refresh()
    assert refresher.get_result().requeue_after is None
    assert list(key_store.get_keys(RESOURCE)) == [MapKey("", "")]
    assert (await resource_client.get(RESOURCE_ID)).status.properties == {}


async def test_deletion(
    refresher: KubeRefresher,
    key_store: InMemoryKeyStore,
    root_cert: x509.Certificate,
) -> None:
    """Test a deleted resource has its material removed."""
    key_store.set_certificates(RESOURCE, {MapKey("cert1", "v1"): [root_cert]})
    key_store.set_certificates("other/resource", {MapKey("cert1", "v1"): [root_cert]})
    await refresher.refresh()
    assert key_store.get_certificates(RESOURCE) == {}
    assert key_store.flatten_certificates() == [root_cert]
    assert not refresher.get_result().requeue


async def test_provider_config_error(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
) -> None:
    """Test a provider that cannot be built records the error in status."""
    add_resource(resource_client, parameters={"certificates": [{"name": "cert1"}]})
    with pytest.raises(ConfigException, match="vaultAddress is not set"):
        await refresher.refresh()

    status = (await resource_client.get(RESOURCE_ID)).status
    assert not status.is_success
    assert status.error == "vaultAddress is not set"
    assert status.brief_error == "vaultAddress is not set"


async def test_fetch_error(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    populated_vault: FakeVaultClient,
    root_cert: x509.Certificate,
) -> None:
    """Test a failed fetch keeps previous material and records the error."""
    key_store.set_certificates(RESOURCE, {MapKey("cert1", "v0"): [root_cert]})
    populated_vault.keys[("key1", "")] = VaultRequestError(
        "service unavailable", status_code=503
    )
    add_resource(resource_client)

    with pytest.raises(FetchException, match="failed to fetch material"):
        await refresher.refresh()

    assert isinstance(key_store.get_error(RESOURCE), FetchException)
    assert key_store.get_certificates(RESOURCE) == {MapKey("cert1", "v0"): [root_cert]}
    assert populated_vault.closed
    status = (await resource_client.get(RESOURCE_ID)).status
    assert not status.is_success
    assert status.error is not None
    assert "service unavailable" in status.error
    assert status.brief_error == status.error[:30] + "..."


async def test_recovery_clears_error(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
    populated_vault: FakeVaultClient,
) -> None:
    """Test a successful cycle clears the error of a previous failure."""
    key_store.set_error(RESOURCE, FetchException("boom"))
    add_resource(resource_client)
    await refresher.refresh()
    assert key_store.get_error(RESOURCE) is None


async def test_invalid_refresh_interval(
    refresher: KubeRefresher,
    resource_client: InMemoryResourceClient,
    populated_vault: FakeVaultClient,
) -> None:
    """Test an invalid refresh interval fails the cycle."""
    add_resource(resource_client, refresh_interval="soon")
    with pytest.raises(ConfigException, match="invalid duration"):
        await refresher.refresh()
    status = (await resource_client.get(RESOURCE_ID)).status
    assert not status.is_success


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1h", datetime.timedelta(hours=1)),
        ("1h30m", datetime.timedelta(hours=1, minutes=30)),
        ("90s", datetime.timedelta(seconds=90)),
        ("250ms", datetime.timedelta(milliseconds=250)),
        ("1.5h", datetime.timedelta(minutes=90)),
        ("0", datetime.timedelta()),
    ],
)
def test_parse_duration(value: str, expected: datetime.timedelta) -> None:
    """Test parsing refresh intervals."""
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "1", "5 minutes", "h", "-1h", "1d"])
def test_parse_invalid_duration(value: str) -> None:
    """Test invalid refresh intervals."""
    with pytest.raises(ConfigException):
        parse_duration(value)

class UnreachableSecretClient:
    """Stand in for the SDK secret client when the vault cannot be reached."""

    async def get_secret(self, name: str, version: str | None) -> Any:
        raise ServiceRequestError("connection refused")

    async def close(self) -> None:
        pass


class ClosableStub:
    async def close(self) -> None:
        pass


async def test_vault_unreachable(
    resource_client: InMemoryResourceClient,
    key_store: InMemoryKeyStore,
) -> None:
    """Test a connection failure in the SDK records a failure status."""
    azure_client = AzureVaultClient(
        ClosableStub(),  # type: ignore[arg-type]
        UnreachableSecretClient(),  # type: ignore[arg-type]
        ClosableStub(),  # type: ignore[arg-type]
        ClosableStub(),  # type: ignore[arg-type]
    )
    providers = ProviderRegistry()
    providers.register(
        "vault-backend", VaultProviderFactory(client_factory=lambda *args: azure_client)
    )
    refresher = KubeRefresher(resource_client, RESOURCE_ID, key_store, providers)
    add_resource(resource_client)

    with pytest.raises(FetchException, match="connection refused"):
        await refresher.refresh()

    assert key_store.get_error(RESOURCE) is not None
    status = (await resource_client.get(RESOURCE_ID)).status
    assert not status.is_success
    assert status.error is not None
    assert "connection refused" in status.error
