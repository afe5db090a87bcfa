"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the engine actually reads.

Access pattern::

    from acmelib.config import get_config

    ca = get_config().settings.ca
    print(ca.directory_url, ca.timeout_seconds)
"""

from __future__ import annotations

from dataclasses import dataclass

from acmelib import __version__

# ---------------------------------------------------------------------------
# CA
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CASettings:
    """ACME directory and transport settings."""

    directory_url: str
    timeout_seconds: int
    user_agent: str
    verify_ssl: bool
    ca_cert_path: str | None
    bad_nonce_retries: int


def _build_ca(data: dict | None) -> CASettings:
    d = data or {}
    return CASettings(
        directory_url=d["directory_url"],
        timeout_seconds=d.get("timeout_seconds", 30),
        user_agent=d.get("user_agent", f"acmelib/{__version__}"),
        verify_ssl=d.get("verify_ssl", True),
        ca_cert_path=d.get("ca_cert_path"),
        bad_nonce_retries=d.get("bad_nonce_retries", 5),
    )


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountSettings:
    email: str | None
    key_file: str | None
    agree_tos: bool


def _build_account(data: dict | None) -> AccountSettings:
    d = data or {}
    return AccountSettings(
        email=d.get("email"),
        key_file=d.get("key_file"),
        agree_tos=d.get("agree_tos", True),
    )


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResponderSettings:
    """Built-in HTTP-01 responder (bind address)."""

    enabled: bool
    bind: str
    port: int


@dataclass(frozen=True)
class Http01Settings:
    webroot: str | None
    responder: ResponderSettings


@dataclass(frozen=True)
class Dns01Settings:
    resolvers: tuple[str, ...]
    timeout_seconds: int
    precheck: bool
    precheck_timeout_seconds: int


@dataclass(frozen=True)
class ChallengeSettings:
    enabled: tuple[str, ...]
    queue_size: int
    http01: Http01Settings
    dns01: Dns01Settings


def _build_challenges(data: dict | None) -> ChallengeSettings:
    d = data or {}
    h = d.get("http01") or {}
    r = h.get("responder") or {}
    dns = d.get("dns01") or {}
    return ChallengeSettings(
        enabled=tuple(d.get("enabled", ["http-01", "dns-01"])),
        queue_size=d.get("queue_size", 100),
        http01=Http01Settings(
            webroot=h.get("webroot"),
            responder=ResponderSettings(
                enabled=r.get("enabled", False),
                bind=r.get("bind", "0.0.0.0"),  # noqa: S104
                port=r.get("port", 80),
            ),
        ),
        dns01=Dns01Settings(
            resolvers=tuple(dns.get("resolvers", [])),
            timeout_seconds=dns.get("timeout_seconds", 30),
            precheck=dns.get("precheck", False),
            precheck_timeout_seconds=dns.get("precheck_timeout_seconds", 120),
        ),
    )


# ---------------------------------------------------------------------------
# Order polling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderSettings:
    """Authorization polling schedule (exponential, capped)."""

    poll_base_seconds: float
    poll_max_seconds: float
    poll_timeout_seconds: float


def _build_order(data: dict | None) -> OrderSettings:
    d = data or {}
    return OrderSettings(
        poll_base_seconds=d.get("poll_base_seconds", 1),
        poll_max_seconds=d.get("poll_max_seconds", 30),
        poll_timeout_seconds=d.get("poll_timeout_seconds", 300),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str
    file: str | None
    max_file_size_bytes: int
    backup_count: int


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        file=d.get("file"),
        max_file_size_bytes=d.get("max_file_size_bytes", 10_485_760),
        backup_count=d.get("backup_count", 5),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmelibSettings:
    ca: CASettings
    account: AccountSettings
    challenges: ChallengeSettings
    order: OrderSettings
    logging: LoggingSettings


def build_settings(data: dict) -> AcmelibSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`AcmelibConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return AcmelibSettings(
        ca=_build_ca(data.get("ca")),
        account=_build_account(data.get("account")),
        challenges=_build_challenges(data.get("challenges")),
        order=_build_order(data.get("order")),
        logging=_build_logging(data.get("logging")),
    )
