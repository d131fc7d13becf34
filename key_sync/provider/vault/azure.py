"""Vault client implemented with the Azure Key Vault SDK.

Authentication uses a federated workload identity; the token file and
authority host are read from the environment by the credential.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
import base64
from enum import Enum
import logging
from typing import Any

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
)
from azure.identity.aio import WorkloadIdentityCredential
from azure.keyvault.certificates.aio import CertificateClient
from azure.keyvault.keys import JsonWebKey
from azure.keyvault.keys.aio import KeyClient
from azure.keyvault.secrets.aio import SecretClient

from key_sync.exceptions import AuthenticationException, VaultRequestError

from .client import CertificateBundle, KeyBundle, SecretBundle, VaultClient, VersionItem

__all__ = [
    "AzureVaultClient",
    "create_azure_client",
]

_LOGGER = logging.getLogger(__name__)

JWK_BINARY_FIELDS = ("n", "e", "x", "y")


@asynccontextmanager
async def _translate_errors(kind: str, name: str) -> AsyncIterator[None]:
    """Convert SDK errors into VaultRequestError keeping status and body.

    Transport errors, such as connection failures, carry no status code.
    """
    try:
        yield
    except ClientAuthenticationError as err:
        raise AuthenticationException(
            f"failed to authenticate fetching {kind} {name}: {err}"
        ) from err
    except HttpResponseError as err:
        body = None
        if err.response is not None:
            body = err.response.text()
        raise VaultRequestError(
            f"request for {kind} {name} failed: {err.message}",
            status_code=err.status_code,
            body=body,
        ) from err
    except AzureError as err:
        raise VaultRequestError(f"request for {kind} {name} failed: {err}") from err


def _jwk_to_dict(jwk: JsonWebKey | None) -> dict[str, Any] | None:
    """Return JSON Web Key fields with binary values base64url encoded."""
    if jwk is None:
        return None
    result: dict[str, Any] = {}
    if jwk.kid:
        result["kid"] = jwk.kid
    for attr in ("kty", "crv"):
        if (value := getattr(jwk, attr, None)) is not None:
            result[attr] = value.value if isinstance(value, Enum) else value
    for attr in JWK_BINARY_FIELDS:
        if (value := getattr(jwk, attr, None)) is not None:
            result[attr] = base64.urlsafe_b64encode(value).rstrip(b"=").decode()
    return result


class AzureVaultClient(VaultClient):
    """VaultClient backed by the async Azure Key Vault clients."""

    def __init__(
        self,
        credential: WorkloadIdentityCredential,
        secrets: SecretClient,
        certificates: CertificateClient,
        keys: KeyClient,
    ) -> None:
        """Initialize AzureVaultClient."""
        self._credential = credential
        self._secrets = secrets
        self._certificates = certificates
        self._keys = keys

    async def get_secret(self, name: str, version: str) -> SecretBundle:
        """Fetch a secret version, the current one when version is empty."""
        async with _translate_errors("secret", name):
            secret = await self._secrets.get_secret(name, version or None)
        return SecretBundle(
            id=secret.id,
            value=secret.value,
            content_type=secret.properties.content_type,
            enabled=secret.properties.enabled,
        )

    async def get_certificate(self, name: str, version: str) -> CertificateBundle:
        """Fetch certificate metadata, the current version when version is empty."""
        async with _translate_errors("certificate", name):
            if version:
                cert = await self._certificates.get_certificate_version(name, version)
            else:
                cert = await self._certificates.get_certificate(name)
        return CertificateBundle(id=cert.id, enabled=cert.properties.enabled)

    async def list_certificate_versions(
        self, name: str
    ) -> AsyncIterator[Sequence[VersionItem]]:
        """Yield pages of certificate versions."""
        pager = self._certificates.list_properties_of_certificate_versions(name)
        async with _translate_errors("certificate versions", name):
            async for page in pager.by_page():
                yield [
                    VersionItem(id=item.id, created_on=item.created_on, enabled=item.enabled)
                    async for item in page
                ]

    async def get_key(self, name: str, version: str) -> KeyBundle:
        """Fetch a key version, the current one when version is empty."""
        async with _translate_errors("key", name):
            key = await self._keys.get_key(name, version or None)
        return KeyBundle(
            id=key.id, key=_jwk_to_dict(key.key), enabled=key.properties.enabled
        )

    async def list_key_versions(self, name: str) -> AsyncIterator[Sequence[VersionItem]]:
        """Yield pages of key versions."""
        pager = self._keys.list_properties_of_key_versions(name)
        async with _translate_errors("key versions", name):
            async for page in pager.by_page():
                yield [
                    VersionItem(id=item.id, created_on=item.created_on, enabled=item.enabled)
                    async for item in page
                ]

    async def close(self) -> None:
        """Close the SDK clients and the credential."""
        await self._secrets.close()
        await self._certificates.close()
        await self._keys.close()
        await self._credential.close()


def create_azure_client(
    vault_address: str, tenant_id: str, client_id: str
) -> AzureVaultClient:
    """Build an Azure vault client authenticated with workload identity."""
    try:
        credential = WorkloadIdentityCredential(tenant_id=tenant_id, client_id=client_id)
    except ValueError as err:
        raise AuthenticationException(
            f"failed to create workload identity credential: {err}"
        ) from err
    _LOGGER.debug("Created workload identity credential for client %s", client_id)
    return AzureVaultClient(
        credential,
        SecretClient(vault_url=vault_address, credential=credential),
        CertificateClient(vault_url=vault_address, credential=credential),
        KeyClient(vault_url=vault_address, credential=credential),
    )
