"""Certificate revocation (RFC 8555 §7.6)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acmelib.core.errors import RevocationError, RevocationErrorKind, RPCFailed
from acmelib.core.keys import load_certificate_pem
from acmelib.core.types import RevocationReason

if TYPE_CHECKING:
    from acmelib.ca.base import CAClient
    from acmelib.models import Account

log = logging.getLogger(__name__)


class RevocationHandler:
    """Revokes certificates with the owning account's key."""

    def __init__(self, ca_client: CAClient) -> None:
        self._ca = ca_client

    def validate(
        self,
        certificate_pem: str | bytes,
        reason_code: int = 0,
    ) -> tuple[x509.Certificate, RevocationReason]:
        """Decode *certificate_pem* and check *reason_code* without contacting the CA.

        Raises
        ------
        RevocationError
            ``MALFORMED_CERTIFICATE`` for input that is not a PEM
            certificate, ``INVALID_REASON`` for a code outside RFC 5280.

        """
        try:
            cert = load_certificate_pem(certificate_pem)
        except ValueError as exc:
            msg = f"Cannot parse certificate: {exc}"
            raise RevocationError(msg, kind=RevocationErrorKind.MALFORMED_CERTIFICATE) from exc

        try:
            reason = RevocationReason(reason_code)
        except ValueError as exc:
            msg = f"Invalid revocation reason code {reason_code}"
            raise RevocationError(msg, kind=RevocationErrorKind.INVALID_REASON) from exc
        return cert, reason

    def revoke(
        self,
        certificate_pem: str | bytes,
        account: Account,
        reason_code: int = 0,
    ) -> None:
        """Ask the CA to revoke *certificate_pem*.

        The certificate and reason go through :meth:`validate` first;
        neither failure reaches the CA.

        Raises
        ------
        RevocationError
            As :meth:`validate`, plus ``RPC_FAILED`` when the CA refuses
            or cannot be reached.

        """
        cert, reason = self.validate(certificate_pem, reason_code)
        serial = format(cert.serial_number, "x")
        cert_der = cert.public_bytes(serialization.Encoding.DER)
        try:
            self._ca.revoke(account.key, cert_der, reason, kid=account.kid)
        except RPCFailed as exc:
            msg = f"CA refused to revoke certificate {serial}: {exc.detail}"
            raise RevocationError(
                msg,
                kind=RevocationErrorKind.RPC_FAILED,
                cause=exc,
                reference=exc.reference,
            ) from exc

        log.info("Revoked certificate %s (reason=%s)", serial, reason.name.lower())
