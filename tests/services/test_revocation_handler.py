"""Tests for acmelib.services.revocation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization

from acmelib.core.errors import RevocationError, RevocationErrorKind, RPCFailed
from acmelib.core.types import RevocationReason
from acmelib.services.account import AccountManager
from acmelib.services.revocation import RevocationHandler


@pytest.fixture()
def account(fake_ca):
    account = AccountManager(fake_ca).ensure_account("ops@example.com")
    fake_ca.calls.clear()
    return account


@pytest.fixture()
def cert_pem(fake_ca):
    return fake_ca.ca_cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


class TestRevoke:
    def test_sends_der_and_reason(self, fake_ca, account, cert_pem):
        RevocationHandler(fake_ca).revoke(cert_pem, account, reason_code=4)

        der, reason, kid = fake_ca.revoked[0]
        assert der == fake_ca.ca_cert.public_bytes(serialization.Encoding.DER)
        assert reason == RevocationReason.SUPERSEDED
        assert kid == account.kid

    def test_accepts_bytes(self, fake_ca, account, cert_pem):
        RevocationHandler(fake_ca).revoke(cert_pem.encode("ascii"), account)
        assert fake_ca.revoked[0][1] == 0

    def test_malformed_certificate_makes_no_call(self, fake_ca, account):
        with pytest.raises(RevocationError) as exc_info:
            RevocationHandler(fake_ca).revoke("garbage", account)
        assert exc_info.value.kind == RevocationErrorKind.MALFORMED_CERTIFICATE
        assert fake_ca.rpc_count() == 0

    def test_corrupt_pem_body(self, fake_ca, account):
        pem = "-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n"
        with pytest.raises(RevocationError) as exc_info:
            RevocationHandler(fake_ca).revoke(pem, account)
        assert exc_info.value.kind == RevocationErrorKind.MALFORMED_CERTIFICATE
        assert fake_ca.rpc_count() == 0

    @pytest.mark.parametrize("code", [-1, 7, 11])
    def test_invalid_reason_makes_no_call(self, fake_ca, account, cert_pem, code):
        with pytest.raises(RevocationError) as exc_info:
            RevocationHandler(fake_ca).revoke(cert_pem, account, reason_code=code)
        assert exc_info.value.kind == RevocationErrorKind.INVALID_REASON
        assert fake_ca.rpc_count() == 0

    def test_ca_refusal(self, account, cert_pem):
        ca = MagicMock()
        ca.revoke.side_effect = RPCFailed("already revoked", reference="https://ca/revoke")
        with pytest.raises(RevocationError) as exc_info:
            RevocationHandler(ca).revoke(cert_pem, account, reason_code=1)
        assert exc_info.value.kind == RevocationErrorKind.RPC_FAILED
        assert isinstance(exc_info.value.cause, RPCFailed)
        assert exc_info.value.reference == "https://ca/revoke"
