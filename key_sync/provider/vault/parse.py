"""Parsing of certificate bundles and JSON Web Keys returned by a vault."""

import base64
import binascii
from collections.abc import Iterator
from dataclasses import dataclass
import logging
import re
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12
from jwt.algorithms import ECAlgorithm, RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from key_sync.exceptions import CertificateInvalidError, KeyInvalidError

__all__ = [
    "PKCS12_CONTENT_TYPE",
    "PEM_CONTENT_TYPE",
    "parse_certificate_bundle",
    "parse_json_web_key",
]

_LOGGER = logging.getLogger(__name__)

PKCS12_CONTENT_TYPE = "application/x-pkcs12"
PEM_CONTENT_TYPE = "application/x-pem-file"

CERTIFICATE_BLOCK = "CERTIFICATE"

PEM_BLOCK_RE = re.compile(
    r"-----BEGIN (?P<type>[A-Z0-9 ]+)-----\r?\n(?P<body>.*?)-----END (?P=type)-----(?P<tail>[^\n]*)\n?",
    re.DOTALL,
)

HSM_KEY_TYPES = {
    "RSA-HSM": "RSA",
    "EC-HSM": "EC",
}

KEY_ALGORITHMS: dict[str, type[RSAAlgorithm] | type[ECAlgorithm]] = {
    "RSA": RSAAlgorithm,
    "EC": ECAlgorithm,
}

# Vault curve names that differ from the JSON Web Algorithms registry
CURVE_NAMES = {
    "P-256K": "secp256k1",
}


@dataclass(frozen=True)
class PemBlock:
    """A single PEM encoded block."""

    type: str
    pem: bytes


def _pem_blocks(data: bytes, name: str, version: str) -> Iterator[PemBlock]:
    """Yield PEM blocks in order.

    Anything between blocks is ignored, but content after the final block that
    is not whitespace means the stream is malformed. The END line of a block
    may only be followed by whitespace.
    """
    text = data.decode("utf-8", errors="replace")
    end = 0
    for match in PEM_BLOCK_RE.finditer(text):
        end = match.end()
        if match.group("tail").strip():
            raise CertificateInvalidError(
                f"certificate '{name}', version '{version}': unexpected content "
                f"after the END line of a {match.group('type')} block"
            )
        yield PemBlock(type=match.group("type"), pem=match.group(0).encode())
    if end and text[end:].strip():
        raise CertificateInvalidError(
            f"certificate '{name}', version '{version}': unable to decode "
            "trailing content after the last PEM block"
        )


def _pkcs12_to_pem(value: str, name: str, version: str) -> bytes:
    """Decode a base64 PKCS#12 bundle and re-encode its contents as PEM."""
    try:
        p12 = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise CertificateInvalidError(
            f"failed to decode PKCS12 value. Certificate {name}, version {version}"
        ) from err
    try:
        bundle = pkcs12.load_pkcs12(p12, None)
    except ValueError as err:
        raise CertificateInvalidError(
            f"failed to convert PKCS12 value to PEM. Certificate {name}, version {version}"
        ) from err

    blocks: list[bytes] = []
    if bundle.key is not None:
        blocks.append(
            bundle.key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    if bundle.cert is not None:
        blocks.append(bundle.cert.certificate.public_bytes(serialization.Encoding.PEM))
    for additional in bundle.additional_certs:
        blocks.append(additional.certificate.public_bytes(serialization.Encoding.PEM))
    return b"".join(blocks)


def parse_certificate_bundle(
    value: str, content_type: str, name: str, version: str
) -> list[x509.Certificate]:
    """Parse the certificates out of a combined secret bundle.

    In a certificate chain all certificates are returned in the order they are
    encoded, root to leaf. Private keys are never exported and are skipped.
    """
    if content_type not in (PKCS12_CONTENT_TYPE, PEM_CONTENT_TYPE):
        raise CertificateInvalidError(
            f"certificate {name} version {version}, unsupported secret content type "
            f"{content_type}, supported type are {PKCS12_CONTENT_TYPE} and {PEM_CONTENT_TYPE}"
        )

    if content_type == PKCS12_CONTENT_TYPE:
        data = _pkcs12_to_pem(value, name, version)
    else:
        data = value.encode()

    results: list[x509.Certificate] = []
    for block in _pem_blocks(data, name, version):
        if block.type.endswith("PRIVATE KEY"):
            _LOGGER.warning(
                "Certificate %s, version %s private key skipped; create the "
                "certificate with a non-exportable key to avoid this",
                name,
                version,
            )
        elif block.type == CERTIFICATE_BLOCK:
            try:
                certs = x509.load_pem_x509_certificates(block.pem)
            except ValueError as err:
                raise CertificateInvalidError(
                    f"failed to decode certificate {name}, version {version}"
                ) from err
            results.extend(certs)
        else:
            _LOGGER.warning(
                "Certificate '%s', version '%s': unknown PEM block type %s",
                name,
                version,
                block.type,
            )

    if not results:
        raise CertificateInvalidError(
            f"certificate {name}, version {version}: no certificates found in bundle"
        )
    _LOGGER.debug(
        "%d certificates parsed, certificate '%s', version '%s'",
        len(results),
        name,
        version,
    )
    return results


def parse_json_web_key(jwk: dict[str, Any] | None) -> PublicKeyTypes:
    """Return the public key described by a JSON Web Key.

    HSM backed key types are normalized to the matching software key type
    since only the public half is needed.
    """
    if jwk is None:
        raise KeyInvalidError("found invalid key bundle, key must not be None")
    if not jwk.get("kty"):
        raise KeyInvalidError("found invalid key bundle, keytype must not be None")

    normalized = dict(jwk)
    normalized["kty"] = HSM_KEY_TYPES.get(jwk["kty"], jwk["kty"])
    if (algorithm := KEY_ALGORITHMS.get(normalized["kty"])) is None:
        raise KeyInvalidError(f"unsupported key type {jwk['kty']}")
    if (crv := normalized.get("crv")) in CURVE_NAMES:
        normalized["crv"] = CURVE_NAMES[crv]
    try:
        key = algorithm.from_jwk(normalized)
    except (InvalidKeyError, ValueError, TypeError) as err:
        raise KeyInvalidError(
            f"failed to unmarshal key into JSON Web Key: {err}"
        ) from err
    if isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        return key.public_key()
    return key
