"""Tests for acmelib.challenge.dns01."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import dns.exception
import dns.resolver
import pytest

from acmelib.challenge.dns01 import Dns01Provider, record_name
from acmelib.challenge.store import ChallengeStore
from acmelib.config.settings import Dns01Settings
from acmelib.core.errors import Cancelled
from acmelib.core.jws import dns01_txt_value
from acmelib.services.backoff import Cancellation


def _settings(**overrides) -> Dns01Settings:
    values = {
        "resolvers": ("192.0.2.53",),
        "timeout_seconds": 5,
        "precheck": True,
        "precheck_timeout_seconds": 1,
    }
    values.update(overrides)
    return Dns01Settings(**values)


@pytest.fixture()
def store():
    return ChallengeStore("dns-01")


class TestRecordName:
    def test_plain(self):
        assert record_name("example.com") == "_acme-challenge.example.com"

    def test_wildcard_prefix_stripped(self):
        assert record_name("*.example.com") == "_acme-challenge.example.com"


class TestPresent:
    def test_proof_is_digest(self, store):
        provider = Dns01Provider(store)
        assert provider.proof("example.com", "tok", "tok.thumb") == dns01_txt_value("tok.thumb")

    def test_present_queues_record(self, store):
        provider = Dns01Provider(store)
        provider.present("*.example.com", "tok", "tok.thumb")
        record = store.next_ready()
        assert record.domain == "*.example.com"
        assert record.content == dns01_txt_value("tok.thumb")
        assert record.type == "dns-01"

    def test_mark_verified(self, store):
        provider = Dns01Provider(store)
        provider.present("example.com", "tok", "tok.thumb")
        assert provider.mark_verified("example.com", "tok", "tok.thumb") is True
        assert store.records_for("example.com")[0].verified


class TestPrecheck:
    def test_disabled_skips_lookup(self, store):
        provider = Dns01Provider(store, settings=_settings(precheck=False))
        with patch.object(provider, "_lookup_txt") as lookup:
            provider.wait_until_visible("example.com", "tok", "tok.thumb")
        lookup.assert_not_called()

    def test_visible_returns_immediately(self, store):
        provider = Dns01Provider(store, settings=_settings())
        expected = dns01_txt_value("tok.thumb")
        with patch.object(provider, "_lookup_txt", return_value={expected}) as lookup:
            provider.wait_until_visible("*.example.com", "tok", "tok.thumb")
        lookup.assert_called_once_with("_acme-challenge.example.com")

    def test_timeout_proceeds_with_warning(self, store, caplog):
        provider = Dns01Provider(store, settings=_settings(precheck_timeout_seconds=0))
        with patch.object(provider, "_lookup_txt", return_value=set()):
            provider.wait_until_visible("example.com", "tok", "tok.thumb")
        assert "not visible" in caplog.text

    def test_cancellation_interrupts(self, store):
        provider = Dns01Provider(store, settings=_settings(precheck_timeout_seconds=60))
        cancel = Cancellation()
        cancel.cancel()
        with patch.object(provider, "_lookup_txt", return_value=set()), pytest.raises(Cancelled):
            provider.wait_until_visible("example.com", "tok", "tok.thumb", cancel)


class TestLookup:
    def test_collects_txt_strings(self, store):
        provider = Dns01Provider(store, settings=_settings())
        rdata = MagicMock()
        rdata.strings = (b"abc", b"def")
        resolver = MagicMock()
        resolver.resolve.return_value = [rdata]

        with patch("acmelib.challenge.dns01.dns.resolver.Resolver", return_value=resolver):
            values = provider._lookup_txt("_acme-challenge.example.com")

        assert values == {"abcdef"}
        assert resolver.nameservers == ["192.0.2.53"]
        assert resolver.lifetime == 5
        resolver.resolve.assert_called_once_with("_acme-challenge.example.com", "TXT")

    def test_nxdomain_is_empty(self, store):
        provider = Dns01Provider(store, settings=_settings())
        resolver = MagicMock()
        resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
        with patch("acmelib.challenge.dns01.dns.resolver.Resolver", return_value=resolver):
            assert provider._lookup_txt("_acme-challenge.example.com") == set()

    def test_timeout_is_empty(self, store):
        provider = Dns01Provider(store, settings=_settings())
        resolver = MagicMock()
        resolver.resolve.side_effect = dns.exception.Timeout()
        with patch("acmelib.challenge.dns01.dns.resolver.Resolver", return_value=resolver):
            assert provider._lookup_txt("_acme-challenge.example.com") == set()
