"""Test fixtures for key-sync."""

import base64

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from key_sync.store import InMemoryKeyStore

from .fakes import FakeVaultClient, make_certificate


@pytest.fixture(name="root_key", scope="session")
def root_key_fixture() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(name="leaf_key", scope="session")
def leaf_key_fixture() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(name="rsa_key", scope="session")
def rsa_key_fixture() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(name="root_cert", scope="session")
def root_cert_fixture(root_key: ec.EllipticCurvePrivateKey) -> x509.Certificate:
    return make_certificate("Test Root", root_key)


@pytest.fixture(name="leaf_cert", scope="session")
def leaf_cert_fixture(
    leaf_key: ec.EllipticCurvePrivateKey,
    root_cert: x509.Certificate,
    root_key: ec.EllipticCurvePrivateKey,
) -> x509.Certificate:
    return make_certificate("Test Leaf", leaf_key, root_cert, root_key)


@pytest.fixture(name="pem_chain", scope="session")
def pem_chain_fixture(
    leaf_key: ec.EllipticCurvePrivateKey,
    root_cert: x509.Certificate,
    leaf_cert: x509.Certificate,
) -> str:
    """A PEM bundle as stored by the vault: private key then the chain."""
    private_key = leaf_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return b"".join(
        [
            private_key,
            root_cert.public_bytes(serialization.Encoding.PEM),
            leaf_cert.public_bytes(serialization.Encoding.PEM),
        ]
    ).decode()


@pytest.fixture(name="pkcs12_value", scope="session")
def pkcs12_value_fixture(
    leaf_key: ec.EllipticCurvePrivateKey,
    root_cert: x509.Certificate,
    leaf_cert: x509.Certificate,
) -> str:
    """A base64 encoded PKCS#12 bundle without a password."""
    data = pkcs12.serialize_key_and_certificates(
        b"leaf", leaf_key, leaf_cert, [root_cert], serialization.NoEncryption()
    )
    return base64.b64encode(data).decode()


@pytest.fixture(name="vault_client")
def vault_client_fixture() -> FakeVaultClient:
    return FakeVaultClient()


@pytest.fixture(name="key_store")
def key_store_fixture() -> InMemoryKeyStore:
    return InMemoryKeyStore()
