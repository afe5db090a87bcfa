"""Engine error taxonomy and RFC 7807 problem documents.

Every error the engine raises derives from :class:`AcmeError` and
carries enough context (domain, order/authorization URL, challenge
type) to be correlated with log lines.  :class:`AcmeProblem` is the
decoded ``application/problem+json`` body a CA returns on failure and is
attached as the ``cause`` of :class:`RPCFailed`.

Usage::

    try:
        bundle = engine.issue(["example.com"], "http-01")
    except ChallengeValidationFailed as exc:
        log.error("validation failed for %s: %s", exc.domain, exc.reason)
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# ACME error-type URNs (RFC 8555 §6.7)
# ---------------------------------------------------------------------------
_P = "urn:ietf:params:acme:error:"

ACCOUNT_DOES_NOT_EXIST = _P + "accountDoesNotExist"
ALREADY_REVOKED = _P + "alreadyRevoked"
BAD_CSR = _P + "badCSR"
BAD_NONCE = _P + "badNonce"
BAD_REVOCATION_REASON = _P + "badRevocationReason"
CONNECTION = _P + "connection"
DNS = _P + "dns"
INCORRECT_RESPONSE = _P + "incorrectResponse"
MALFORMED = _P + "malformed"
ORDER_NOT_READY = _P + "orderNotReady"
RATE_LIMITED = _P + "rateLimited"
REJECTED_IDENTIFIER = _P + "rejectedIdentifier"
SERVER_INTERNAL = _P + "serverInternal"
UNAUTHORIZED = _P + "unauthorized"

# Content type for RFC 7807 responses
PROBLEM_CONTENT_TYPE = "application/problem+json"

_HTTP_SERVER_ERROR = 500


# ---------------------------------------------------------------------------
# Problem document
# ---------------------------------------------------------------------------


class AcmeProblem(Exception):
    """An RFC 7807 *problem details* object returned by the CA.

    Parameters
    ----------
    error_type:
        A URN string (one of the constants above) or ``"about:blank"``.
    detail:
        Human-readable explanation of the problem.
    status:
        HTTP status code the CA answered with.
    subproblems:
        Optional list of sub-problem dicts (RFC 8555 §6.7.1).

    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        subproblems: list[dict[str, Any]] | None = None,
    ) -> None:
        self.error_type = error_type
        self.detail = detail
        self.status = status
        self.subproblems = subproblems or []
        super().__init__(detail)

    @classmethod
    def from_dict(cls, body: Any, status: int) -> AcmeProblem:  # noqa: ANN401
        """Decode a problem body, tolerating non-JSON or partial bodies."""
        if not isinstance(body, dict):
            text = body.decode("utf-8", "replace") if isinstance(body, bytes) else str(body or "")
            return cls("about:blank", text or f"HTTP {status}", status)
        return cls(
            str(body.get("type", "about:blank")),
            str(body.get("detail", "")),
            int(body.get("status", status)),
            subproblems=body.get("subproblems"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise back to the RFC 7807 JSON structure."""
        body: dict[str, Any] = {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
        }
        if self.subproblems:
            body["subproblems"] = self.subproblems
        return body

    @property
    def short_type(self) -> str:
        """The error type without the ACME URN prefix."""
        return self.error_type.removeprefix(_P)

    def __str__(self) -> str:
        return f"{self.short_type}: {self.detail}" if self.detail else self.short_type


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class AcmeError(Exception):
    """Base class for every error the engine raises.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    domain:
        The domain the failure concerns, when known.
    reference:
        The order, authorization or challenge URL involved, when known.
    challenge_type:
        The challenge type in use, when relevant.

    """

    def __init__(
        self,
        detail: str,
        *,
        domain: str | None = None,
        reference: str | None = None,
        challenge_type: str | None = None,
    ) -> None:
        self.detail = detail
        self.domain = domain
        self.reference = reference
        self.challenge_type = challenge_type
        super().__init__(detail)

    def context(self) -> dict[str, str]:
        """Return the non-empty correlation fields as a dict."""
        ctx = {
            "domain": self.domain,
            "reference": self.reference,
            "challenge_type": self.challenge_type,
        }
        return {k: str(v) for k, v in ctx.items() if v}

    def __str__(self) -> str:
        ctx = self.context()
        if not ctx:
            return self.detail
        rendered = ", ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{self.detail} [{rendered}]"


class CryptoError(AcmeError):
    """Key generation or signing failed."""


# -- account ----------------------------------------------------------------


class AccountErrorKind(StrEnum):
    REGISTRATION_FAILED = "registration_failed"
    TERMS_DECLINED = "terms_declined"


class AccountError(AcmeError):
    """Account registration failed; retryable by the caller."""

    def __init__(
        self,
        detail: str,
        *,
        kind: AccountErrorKind = AccountErrorKind.REGISTRATION_FAILED,
        cause: BaseException | None = None,
        **ctx: Any,  # noqa: ANN401
    ) -> None:
        super().__init__(detail, **ctx)
        self.kind = kind
        self.cause = cause


# -- issuance ---------------------------------------------------------------


class IssuanceError(AcmeError):
    """Base class for failures fatal to a single order."""


class Cancelled(IssuanceError):
    """The caller aborted the operation or its deadline passed."""


class NoMatchingChallenge(IssuanceError):
    """The CA did not offer the requested challenge type for a domain."""


class ChallengeValidationFailed(IssuanceError):
    """The CA rejected the published proof for a domain.

    The order is terminal; a new order is needed to retry.
    """

    def __init__(self, detail: str, *, reason: str = "", **ctx: Any) -> None:  # noqa: ANN401
        super().__init__(detail, **ctx)
        self.reason = reason


# -- providers --------------------------------------------------------------


class ProviderErrorKind(StrEnum):
    CONFLICT = "conflict"
    PUBLISH_FAILED = "publish_failed"


class ProviderError(AcmeError):
    """A challenge provider could not present its proof."""

    def __init__(
        self,
        detail: str,
        *,
        kind: ProviderErrorKind = ProviderErrorKind.CONFLICT,
        **ctx: Any,  # noqa: ANN401
    ) -> None:
        super().__init__(detail, **ctx)
        self.kind = kind


# -- CA RPC -----------------------------------------------------------------


class RPCFailed(AcmeError):
    """A request to the CA failed at the transport or protocol level.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    cause:
        The decoded :class:`AcmeProblem` or the underlying exception.
    retryable:
        Whether the failure is transient.

    """

    def __init__(
        self,
        detail: str,
        *,
        cause: BaseException | None = None,
        retryable: bool = False,
        **ctx: Any,  # noqa: ANN401
    ) -> None:
        super().__init__(detail, **ctx)
        self.cause = cause
        self.retryable = retryable

    @property
    def problem(self) -> AcmeProblem | None:
        """The CA problem document, if the CA returned one."""
        return self.cause if isinstance(self.cause, AcmeProblem) else None

    @property
    def status(self) -> int | None:
        """The HTTP status of the failed call, if known."""
        problem = self.problem
        return problem.status if problem is not None else None


class AccountExistsError(RPCFailed):
    """The CA already holds an account for this key.

    Parameters
    ----------
    location:
        The existing account URL from the ``Location`` header.

    """

    def __init__(self, location: str | None = None) -> None:
        super().__init__("account already exists", reference=location)
        self.location = location


def is_retryable_problem(problem: AcmeProblem) -> bool:
    """Determine whether a CA problem is worth retrying."""
    if problem.status >= _HTTP_SERVER_ERROR:
        return True
    return problem.error_type in {RATE_LIMITED, CONNECTION, SERVER_INTERNAL}


# -- revocation -------------------------------------------------------------


class RevocationErrorKind(StrEnum):
    MALFORMED_CERTIFICATE = "malformed_certificate"
    INVALID_REASON = "invalid_reason"
    RPC_FAILED = "rpc_failed"


class RevocationError(AcmeError):
    """Revocation failed locally or at the CA."""

    def __init__(
        self,
        detail: str,
        *,
        kind: RevocationErrorKind,
        cause: BaseException | None = None,
        **ctx: Any,  # noqa: ANN401
    ) -> None:
        super().__init__(detail, **ctx)
        self.kind = kind
        self.cause = cause
