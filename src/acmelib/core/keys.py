"""Key generation, CSR construction and PEM conversion.

The engine uses ECDSA P-384 for both account and certificate keys.
All functions are stateless; :class:`KeyManager` exists so the key
source can be swapped out in tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from acmelib.core.errors import CryptoError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

log = logging.getLogger(__name__)

_CURVE = ec.SECP384R1


class KeyManager:
    """Generates key pairs and CSRs for accounts and certificates."""

    def generate_key(self) -> ec.EllipticCurvePrivateKey:
        """Generate a new P-384 private key.

        Raises
        ------
        CryptoError
            If the backend fails to produce a key.

        """
        try:
            key = ec.generate_private_key(_CURVE())
        except Exception as exc:  # noqa: BLE001
            msg = f"Key generation failed: {exc}"
            raise CryptoError(msg) from exc
        log.debug("Generated %s key", _CURVE.name)
        return key

    def build_csr(self, key: PrivateKeyTypes, domains: Sequence[str]) -> bytes:
        """Build a DER-encoded CSR covering *domains*.

        The first domain becomes the subject common name; every domain
        is listed in the subjectAltName extension.
        """
        if not domains:
            msg = "At least one domain is required to build a CSR"
            raise ValueError(msg)
        try:
            csr = (
                x509.CertificateSigningRequestBuilder()
                .subject_name(
                    x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])]),
                )
                .add_extension(
                    x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
                    critical=False,
                )
                .sign(key, hashes.SHA256())
            )
        except (TypeError, ValueError) as exc:
            msg = f"CSR construction failed: {exc}"
            raise CryptoError(msg, domain=domains[0]) from exc
        return csr.public_bytes(serialization.Encoding.DER)


# ---------------------------------------------------------------------------
# PEM helpers
# ---------------------------------------------------------------------------


def private_key_to_pem(key: PrivateKeyTypes) -> str:
    """Serialise *key* as an unencrypted PKCS#8 PEM string."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def load_private_key_pem(data: str | bytes) -> PrivateKeyTypes:
    """Load an unencrypted private key from PEM."""
    if isinstance(data, str):
        data = data.encode("ascii")
    return serialization.load_pem_private_key(data, password=None)


def load_certificate_pem(data: str | bytes) -> x509.Certificate:
    """Parse the first certificate in a PEM string.

    Raises
    ------
    ValueError
        If *data* holds no parseable PEM certificate.

    """
    if isinstance(data, str):
        data = data.encode("ascii", "replace")
    if b"-----BEGIN CERTIFICATE-----" not in data:
        msg = "No PEM certificate block found"
        raise ValueError(msg)
    return x509.load_pem_x509_certificate(data)


def der_to_pem(der: bytes) -> str:
    """Convert a DER certificate to PEM."""
    cert = x509.load_der_x509_certificate(der)
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def split_pem_chain(pem_chain: str) -> list[bytes]:
    """Split a concatenated PEM chain into DER certificates, leaf first."""
    certs = x509.load_pem_x509_certificates(pem_chain.encode("ascii"))
    return [c.public_bytes(serialization.Encoding.DER) for c in certs]
