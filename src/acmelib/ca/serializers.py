"""Response parsing for ACME resources (RFC 8555).

Each function takes a decoded JSON body (plus the resource URL, which
the CA sends in the ``Location`` header or the client already knows)
and produces a frozen model.  Malformed bodies raise :class:`ValueError`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from acmelib.core.types import (
    AccountStatus,
    AuthorizationStatus,
    ChallengeStatus,
    IdentifierType,
    OrderStatus,
)
from acmelib.models import Authorization, Challenge, Identifier, Order, Registration


def _require_dict(body: Any, what: str) -> dict:  # noqa: ANN401
    if not isinstance(body, dict):
        msg = f"Malformed {what} response: expected a JSON object"
        raise ValueError(msg)
    return body


def parse_time(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp; ``None`` passes through."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def parse_identifier(data: dict) -> Identifier:
    return Identifier(
        type=IdentifierType(data.get("type", "dns")),
        value=str(data["value"]),
    )


def parse_registration(body: Any, uri: str) -> Registration:  # noqa: ANN401
    """Parse an account resource (RFC 8555 §7.1.2)."""
    data = _require_dict(body, "account")
    return Registration(
        uri=uri,
        status=AccountStatus(data.get("status", "valid")),
        contact=tuple(data.get("contact") or ()),
        orders=data.get("orders"),
        terms_of_service_agreed=bool(data.get("termsOfServiceAgreed", False)),
    )


def parse_order(body: Any, url: str) -> Order:  # noqa: ANN401
    """Parse an order resource (RFC 8555 §7.1.3)."""
    data = _require_dict(body, "order")
    try:
        return Order(
            url=url,
            status=OrderStatus(data["status"]),
            identifiers=tuple(parse_identifier(i) for i in data.get("identifiers", [])),
            finalize_url=str(data["finalize"]),
            authorizations=tuple(data.get("authorizations", [])),
            certificate_url=data.get("certificate"),
            error=data.get("error"),
            expires=parse_time(data.get("expires")),
        )
    except KeyError as exc:
        msg = f"Malformed order response: missing {exc}"
        raise ValueError(msg) from exc


def parse_challenge(body: Any) -> Challenge:  # noqa: ANN401
    """Parse a challenge object (RFC 8555 §7.1.5)."""
    data = _require_dict(body, "challenge")
    try:
        return Challenge(
            url=str(data["url"]),
            type=str(data["type"]),
            token=str(data.get("token", "")),
            status=ChallengeStatus(data.get("status", "pending")),
            error=data.get("error"),
            validated=parse_time(data.get("validated")),
        )
    except KeyError as exc:
        msg = f"Malformed challenge response: missing {exc}"
        raise ValueError(msg) from exc


def parse_authorization(body: Any, url: str) -> Authorization:  # noqa: ANN401
    """Parse an authorization resource (RFC 8555 §7.1.4)."""
    data = _require_dict(body, "authorization")
    try:
        identifier = parse_identifier(data["identifier"])
        status = AuthorizationStatus(data["status"])
    except KeyError as exc:
        msg = f"Malformed authorization response: missing {exc}"
        raise ValueError(msg) from exc
    return Authorization(
        url=url,
        identifier=identifier,
        status=status,
        challenges=tuple(parse_challenge(c) for c in data.get("challenges", [])),
        wildcard=bool(data.get("wildcard", False)),
        expires=parse_time(data.get("expires")),
    )
