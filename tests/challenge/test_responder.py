"""Tests for acmelib.challenge.responder -- the HTTP-01 responder app."""

from __future__ import annotations

import urllib.request

import pytest

from acmelib.challenge.registry import ProviderRegistry
from acmelib.challenge.responder import ResponderThread, create_responder_app
from acmelib.config.settings import build_settings


def _registry(enabled=("http-01", "dns-01")) -> ProviderRegistry:
    settings = build_settings(
        {
            "ca": {"directory_url": "https://ca.example.test/dir"},
            "challenges": {"enabled": list(enabled)},
        },
    )
    return ProviderRegistry(settings.challenges)


@pytest.fixture()
def registry():
    return _registry()


@pytest.fixture()
def client(registry):
    app = create_responder_app(registry)
    app.config["TESTING"] = True
    return app.test_client()


class TestWellKnown:
    def test_serves_key_authorization(self, registry, client):
        registry.get_provider("http-01").present("example.com", "tok123", "tok123.thumb")
        resp = client.get("/.well-known/acme-challenge/tok123")
        assert resp.status_code == 200
        assert resp.mimetype == "text/plain"
        assert resp.get_data(as_text=True) == "tok123.thumb"

    def test_unknown_token(self, client):
        resp = client.get("/.well-known/acme-challenge/missing")
        assert resp.status_code == 404

    def test_cleaned_up_token_is_gone(self, registry, client):
        provider = registry.get_provider("http-01")
        provider.present("example.com", "tok123", "tok123.thumb")
        provider.cleanup("example.com", "tok123", "tok123.thumb")
        assert client.get("/.well-known/acme-challenge/tok123").status_code == 404

    def test_http01_disabled(self):
        app = create_responder_app(_registry(enabled=("dns-01",)))
        resp = app.test_client().get("/.well-known/acme-challenge/tok")
        assert resp.status_code == 404


class TestExport:
    def test_snapshot(self, registry, client):
        registry.get_provider("dns-01").present("example.com", "tok", "tok.thumb")
        resp = client.get("/challenges/dns-01")
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        body = resp.get_json()
        assert len(body) == 1
        assert body[0]["identifier"] == "example.com"
        assert body[0]["type"] == "dns-01"
        assert body[0]["verified"] is False

    def test_disabled_type(self, client):
        resp = client.get("/challenges/tls-alpn-01")
        assert resp.status_code == 404
        assert "not enabled" in resp.get_json()["error"]


class TestResponderThread:
    def test_serves_over_real_socket(self, registry):
        registry.get_provider("http-01").present("example.com", "tok", "tok.thumb")
        thread = ResponderThread(create_responder_app(registry), "127.0.0.1", 0)
        thread.start()
        try:
            url = f"http://127.0.0.1:{thread.port}/.well-known/acme-challenge/tok"
            with urllib.request.urlopen(url, timeout=5) as resp:  # noqa: S310
                assert resp.read() == b"tok.thumb"
        finally:
            thread.stop()
