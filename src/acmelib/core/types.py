"""Enumerated types shared across the engine.

All status enums inherit from ``StrEnum`` so their ``.value`` is the
plain string the CA sends in its JSON bodies.
:class:`RevocationReason` inherits from :class:`enum.IntEnum` per
RFC 5280 §5.3.1 integer codes.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


class OrderStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


class ChallengeStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class ChallengeType(StrEnum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"


# ---------------------------------------------------------------------------
# Account / identifiers
# ---------------------------------------------------------------------------


class AccountStatus(StrEnum):
    VALID = "valid"
    DEACTIVATED = "deactivated"
    REVOKED = "revoked"


class IdentifierType(StrEnum):
    DNS = "dns"


# ---------------------------------------------------------------------------
# Local issuance state machine
# ---------------------------------------------------------------------------


class IssuanceState(StrEnum):
    CREATED = "created"
    AUTHORIZATIONS_PENDING = "authorizations_pending"
    CHALLENGE_SELECTED = "challenge_selected"
    CHALLENGE_PUBLISHED = "challenge_published"
    POLLING = "polling"
    FINALIZING = "finalizing"
    VALID = "valid"
    INVALID = "invalid"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Revocation reasons (RFC 5280 §5.3.1)
# ---------------------------------------------------------------------------


class RevocationReason(IntEnum):
    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    # 7 is unused
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10
