"""Tests for acmelib.services.engine and acmelib.app.factory."""

from __future__ import annotations

import json
import logging
import os
import stat
import threading

import pytest
from cryptography.hazmat.primitives import serialization

from acmelib.app.factory import create_engine, create_stores
from acmelib.ca.acme_client import AcmeClient
from acmelib.config.settings import build_settings
from acmelib.core.errors import AccountError, AccountErrorKind, RevocationError, RevocationErrorKind
from acmelib.core.keys import KeyManager, der_to_pem, load_private_key_pem, private_key_to_pem
from acmelib.logging.setup import IssuanceContextFilter
from acmelib.services.engine import IssuanceEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(minimal_config_data, **account):
    data = dict(minimal_config_data)
    data["account"] = {**data.get("account", {}), **account}
    return build_settings(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestFactory:
    def test_builds_acme_client_by_default(self, settings):
        engine = create_engine(settings)
        assert isinstance(engine, IssuanceEngine)
        assert isinstance(engine.orders._ca, AcmeClient)
        assert sorted(engine.registry.enabled_types) == ["dns-01", "http-01"]

    def test_stores_use_queue_size(self, minimal_config_data):
        data = {**minimal_config_data, "challenges": {"queue_size": 7, "enabled": ["dns-01", "ext:x.y.Z"]}}
        stores = create_stores(build_settings(data))
        assert list(stores) == ["dns-01"]
        assert stores["dns-01"]._queue.maxsize == 7

    def test_no_providers_warns(self, minimal_config_data, fake_ca, caplog):
        data = {**minimal_config_data, "challenges": {"enabled": ["ext:acmelib_missing.Provider"]}}
        engine = create_engine(build_settings(data), ca_client=fake_ca)
        assert engine.registry.enabled_types == []
        assert "No challenge providers loaded" in caplog.text


# ---------------------------------------------------------------------------
# Account key handling
# ---------------------------------------------------------------------------


class TestAccountKey:
    def test_ephemeral_without_key_file(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        assert engine.account_key() is engine.account_key()

    def test_creates_key_file(self, minimal_config_data, fake_ca, tmp_path):
        key_file = tmp_path / "keys" / "account.pem"
        engine = create_engine(_settings(minimal_config_data, key_file=str(key_file)), ca_client=fake_ca)

        key = engine.account_key()

        assert key_file.exists()
        if os.name == "posix":
            assert stat.S_IMODE(key_file.stat().st_mode) == 0o600
        loaded = load_private_key_pem(key_file.read_bytes())
        assert loaded.private_numbers() == key.private_numbers()

    def test_loads_existing_key_file(self, minimal_config_data, fake_ca, tmp_path):
        key = KeyManager().generate_key()
        key_file = tmp_path / "account.pem"
        key_file.write_text(private_key_to_pem(key), encoding="ascii")

        engine = create_engine(_settings(minimal_config_data, key_file=str(key_file)), ca_client=fake_ca)
        assert engine.account_key().private_numbers() == key.private_numbers()


# ---------------------------------------------------------------------------
# Engine operations
# ---------------------------------------------------------------------------


class TestEngine:
    def test_issue_and_revoke(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        bundle = engine.issue(["example.com"], "http-01")
        engine.revoke(bundle.certificate, reason_code=1)

        assert fake_ca.revoked[0][1] == 1
        assert fake_ca.revoked[0][2] == engine.account().kid

    def test_revoke_malformed_makes_no_call(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        with pytest.raises(RevocationError) as exc_info:
            engine.revoke(b"not a certificate")
        assert exc_info.value.kind == RevocationErrorKind.MALFORMED_CERTIFICATE
        assert fake_ca.rpc_count() == 0

    def test_revoke_invalid_reason_makes_no_call(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        pem = der_to_pem(fake_ca.ca_cert.public_bytes(serialization.Encoding.DER))
        with pytest.raises(RevocationError) as exc_info:
            engine.revoke(pem, reason_code=7)
        assert exc_info.value.kind == RevocationErrorKind.INVALID_REASON
        assert fake_ca.rpc_count() == 0

    def test_account_cached_per_email(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        first = engine.account()
        second = engine.account()
        other = engine.account("other@example.com")

        assert first is second
        assert other is not first
        assert first.email == "ops@example.com"
        assert [name for name, _ in fake_ca.calls].count("register") == 2
        assert other.email == "other@example.com"
        assert other.registration.contact == ("mailto:other@example.com",)
        assert first.registration.contact == ("mailto:ops@example.com",)
        assert other.kid == first.kid

    def test_agree_tos_false_declines(self, minimal_config_data, fake_ca):
        engine = create_engine(_settings(minimal_config_data, agree_tos=False), ca_client=fake_ca)
        with pytest.raises(AccountError) as exc_info:
            engine.issue(["example.com"], "http-01")
        assert exc_info.value.kind == AccountErrorKind.TERMS_DECLINED
        assert "new_order" not in [name for name, _ in fake_ca.calls]

    def test_custom_tos_predicate(self, settings, fake_ca):
        seen = []
        engine = create_engine(settings, ca_client=fake_ca, tos_predicate=lambda url: seen.append(url) or True)
        engine.account()
        assert seen == ["https://ca.example.test/tos"]

    def test_list_pending_challenges(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        assert json.loads(engine.list_pending_challenges("dns-01")) == []

        engine.registry.get_provider("dns-01").present("example.com", "tok", "tok.thumb")
        records = json.loads(engine.list_pending_challenges("dns-01"))
        assert [r["identifier"] for r in records] == ["example.com"]

    def test_list_pending_challenges_disabled(self, minimal_config_data, fake_ca):
        data = {**minimal_config_data, "challenges": {"enabled": ["http-01"]}}
        engine = create_engine(build_settings(data), ca_client=fake_ca)
        with pytest.raises(KeyError):
            engine.list_pending_challenges("dns-01")

    def test_issue_logs_carry_issuance_id(self, settings, fake_ca, caplog):
        engine = create_engine(settings, ca_client=fake_ca)
        caplog.handler.addFilter(IssuanceContextFilter())
        with caplog.at_level(logging.INFO, logger="acmelib.services.engine"):
            engine.issue(["example.com"], "http-01")

        started = [r for r in caplog.records if "started" in r.getMessage()]
        assert started
        assert started[0].issuance_id != "-"
        assert started[0].domains == "example.com"

    def test_engine_is_reusable_for_concurrent_issues(self, settings, fake_ca):
        engine = create_engine(settings, ca_client=fake_ca)
        results, errors = [], []

        def _issue(domain):
            try:
                results.append(engine.issue([domain], "http-01"))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=_issue, args=(f"host{i}.example",)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(b.domains[0] for b in results) == [f"host{i}.example" for i in range(5)]
        assert len(engine.registry.get_store("http-01")) == 0
        pem = results[0].certificate.encode("ascii")
        assert pem.startswith(b"-----BEGIN CERTIFICATE-----")
