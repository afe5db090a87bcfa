"""RFC 8555 client over HTTPS.

Implements :class:`~acmelib.ca.base.CAClient` with the standard library
HTTP stack.  Every request except directory and nonce retrieval is a
JWS-signed POST (reads are POST-as-GET, RFC 8555 §6.3).

Usage::

    client = AcmeClient(settings.ca, poll=settings.order)
    registration = client.register(key, ["mailto:ops@example.com"], agree_tos=True)

Configuration (``ca`` section)::

    ca:
      directory_url: https://acme-staging-v02.api.letsencrypt.org/directory
      timeout_seconds: 30
      bad_nonce_retries: 5
      verify_ssl: true
      ca_cert_path: null
"""

from __future__ import annotations

import contextlib
import json
import logging
import ssl
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from acmelib.ca.base import CAClient
from acmelib.ca.nonce import NoncePool
from acmelib.ca.serializers import (
    parse_authorization,
    parse_challenge,
    parse_order,
    parse_registration,
)
from acmelib.core.errors import (
    BAD_NONCE,
    AccountExistsError,
    AcmeProblem,
    RPCFailed,
    is_retryable_problem,
)
from acmelib.core.jws import b64url_encode, sign_jws
from acmelib.core.keys import split_pem_chain
from acmelib.core.types import OrderStatus
from acmelib.logging.sanitize import sanitize_for_logs
from acmelib.services.backoff import Backoff, Cancellation

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from acmelib.config.settings import CASettings, OrderSettings
    from acmelib.core.types import RevocationReason
    from acmelib.models import Account, Authorization, Challenge, Order, Registration

log = logging.getLogger(__name__)

JOSE_CONTENT_TYPE = "application/jose+json"
PEM_CHAIN_CONTENT_TYPE = "application/pem-certificate-chain"

_HTTP_OK = 200
_HTTP_BAD_REQUEST = 400


@dataclass
class _Response:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        lname = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lname:
                return v
        return None

    def json(self) -> Any:  # noqa: ANN401
        try:
            return json.loads(self.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"CA returned invalid JSON: {exc}"
            raise RPCFailed(msg, cause=exc) from exc


class AcmeClient(CAClient):
    """ACME (RFC 8555) client for one CA directory.

    Parameters
    ----------
    settings:
        The ``ca`` settings section.
    poll:
        The ``order`` settings section; its polling schedule is reused
        while the CA processes a finalized order.
    opener:
        Optional pre-built :class:`urllib.request.OpenerDirector`.

    """

    def __init__(
        self,
        settings: CASettings,
        *,
        poll: OrderSettings | None = None,
        opener: urllib.request.OpenerDirector | None = None,
    ) -> None:
        self._settings = settings
        self._poll = poll
        self._opener = opener
        self._directory: dict[str, Any] | None = None
        self._directory_lock = threading.Lock()
        self.nonces = NoncePool(fetch=self.new_nonce)

    # -- transport ------------------------------------------------------------

    def _get_opener(self) -> urllib.request.OpenerDirector:
        """Build (and cache) an opener honouring the TLS trust settings."""
        if self._opener is not None:
            return self._opener

        ctx = ssl.create_default_context()
        if self._settings.ca_cert_path:
            ctx.load_verify_locations(self._settings.ca_cert_path)
        if not self._settings.verify_ssl:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            log.warning("TLS verification for the ACME directory is disabled")

        self._opener = urllib.request.build_opener(
            urllib.request.HTTPSHandler(context=ctx),
        )
        return self._opener

    def _http(
        self,
        method: str,
        url: str,
        *,
        data: bytes | None = None,
        content_type: str | None = None,
        accept: str = "application/json",
        harvest: bool = True,
    ) -> _Response:
        """Perform one HTTP exchange.

        HTTP error statuses are returned, not raised, so the caller can
        decode the problem document.  Transport failures raise a
        retryable :class:`RPCFailed`.  Unless *harvest* is false the
        response nonce is added to the pool.
        """
        headers = {
            "User-Agent": self._settings.user_agent,
            "Accept": accept,
        }
        if content_type:
            headers["Content-Type"] = content_type
        req = urllib.request.Request(url, data=data, method=method, headers=headers)

        try:
            resp = self._get_opener().open(req, timeout=self._settings.timeout_seconds)
        except urllib.error.HTTPError as exc:
            body = b""
            with contextlib.suppress(Exception):
                body = exc.read()
            response = _Response(exc.code, dict(exc.headers or {}), body)
        except (urllib.error.URLError, OSError) as exc:
            msg = f"Failed to reach CA at {url}: {exc}"
            raise RPCFailed(msg, cause=exc, retryable=True, reference=url) from exc
        else:
            with resp:
                response = _Response(resp.status, dict(resp.headers or {}), resp.read())

        if harvest:
            self.nonces.add(response.header("Replay-Nonce"))
        log.debug("%s %s -> %d", method, url, response.status)
        return response

    @staticmethod
    def _problem(response: _Response) -> AcmeProblem:
        try:
            body = json.loads(response.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = response.body
        return AcmeProblem.from_dict(body, response.status)

    def _raise_for_problem(self, response: _Response, url: str) -> None:
        if response.status < _HTTP_BAD_REQUEST:
            return
        problem = self._problem(response)
        raise RPCFailed(
            f"CA rejected request: {problem}",
            cause=problem,
            retryable=is_retryable_problem(problem),
            reference=url,
        )

    # -- directory and nonces -------------------------------------------------

    def directory(self) -> dict[str, Any]:
        """Return the CA directory, fetching it on first use."""
        with self._directory_lock:
            if self._directory is None:
                url = self._settings.directory_url
                response = self._http("GET", url)
                self._raise_for_problem(response, url)
                directory = response.json()
                if not isinstance(directory, dict):
                    msg = "CA directory is not a JSON object"
                    raise RPCFailed(msg, reference=url)
                self._directory = directory
                log.info("Loaded ACME directory from %s", url)
            return self._directory

    def _endpoint(self, name: str) -> str:
        url = self.directory().get(name)
        if not url:
            msg = f"CA directory has no '{name}' endpoint"
            raise RPCFailed(msg, reference=self._settings.directory_url)
        return url

    def new_nonce(self) -> str:
        """Fetch a fresh nonce with ``HEAD newNonce``."""
        url = self._endpoint("newNonce")
        response = self._http("HEAD", url, harvest=False)
        self._raise_for_problem(response, url)
        nonce = response.header("Replay-Nonce")
        if not nonce:
            msg = "CA did not return a Replay-Nonce"
            raise RPCFailed(msg, retryable=True, reference=url)
        return nonce

    def terms_of_service(self) -> str | None:
        meta = self.directory().get("meta") or {}
        return meta.get("termsOfService")

    # -- signed requests ------------------------------------------------------

    def _post(
        self,
        url: str,
        payload: Any,  # noqa: ANN401
        key: PrivateKeyTypes,
        *,
        kid: str | None = None,
        accept: str = "application/json",
    ) -> _Response:
        """Send a signed request, retrying ``badNonce`` with a fresh nonce."""
        if payload is not None:
            log.debug("POST %s payload=%s", url, sanitize_for_logs(payload))

        retries = self._settings.bad_nonce_retries
        for attempt in range(retries + 1):
            body = sign_jws(key, payload, url=url, nonce=self.nonces.get(), kid=kid)
            response = self._http(
                "POST",
                url,
                data=json.dumps(body).encode("utf-8"),
                content_type=JOSE_CONTENT_TYPE,
                accept=accept,
            )
            if response.status >= _HTTP_BAD_REQUEST:
                problem = self._problem(response)
                if problem.error_type == BAD_NONCE and attempt < retries:
                    log.debug(
                        "badNonce from %s, retrying (%d/%d)",
                        url,
                        attempt + 1,
                        retries,
                    )
                    continue
                raise RPCFailed(
                    f"CA rejected request: {problem}",
                    cause=problem,
                    retryable=is_retryable_problem(problem),
                    reference=url,
                )
            return response

        # Unreachable: the last attempt either returns or raises
        msg = f"Exhausted badNonce retries for {url}"
        raise RPCFailed(msg, reference=url)

    @staticmethod
    def _parse(parser, *args: Any) -> Any:  # noqa: ANN001, ANN401
        try:
            return parser(*args)
        except ValueError as exc:
            raise RPCFailed(str(exc), cause=exc) from exc

    # -- accounts -------------------------------------------------------------

    def register(
        self,
        key: PrivateKeyTypes,
        contact: Sequence[str],
        *,
        agree_tos: bool,
    ) -> Registration:
        url = self._endpoint("newAccount")
        payload: dict[str, Any] = {"termsOfServiceAgreed": agree_tos}
        if contact:
            payload["contact"] = list(contact)
        response = self._post(url, payload, key)
        location = response.header("Location")
        if response.status == _HTTP_OK:
            raise AccountExistsError(location)
        if not location:
            msg = "CA did not return an account URL"
            raise RPCFailed(msg, reference=url)
        log.info("Registered account %s", location)
        return self._parse(parse_registration, response.json(), location)

    def get_registration(self, key: PrivateKeyTypes) -> Registration:
        url = self._endpoint("newAccount")
        response = self._post(url, {"onlyReturnExisting": True}, key)
        location = response.header("Location")
        if not location:
            msg = "CA did not return an account URL"
            raise RPCFailed(msg, reference=url)
        return self._parse(parse_registration, response.json(), location)

    def update_contact(
        self,
        key: PrivateKeyTypes,
        kid: str,
        contact: Sequence[str],
    ) -> Registration:
        response = self._post(kid, {"contact": list(contact)}, key, kid=kid)
        log.info("Updated contact of account %s", kid)
        return self._parse(parse_registration, response.json(), kid)

    # -- orders and authorizations --------------------------------------------

    def new_order(self, account: Account, domains: Sequence[str]) -> Order:
        url = self._endpoint("newOrder")
        payload = {"identifiers": [{"type": "dns", "value": d} for d in domains]}
        response = self._post(url, payload, account.key, kid=account.kid)
        location = response.header("Location")
        if not location:
            msg = "CA did not return an order URL"
            raise RPCFailed(msg, reference=url)
        return self._parse(parse_order, response.json(), location)

    def get_order(self, account: Account, url: str) -> Order:
        response = self._post(url, None, account.key, kid=account.kid)
        return self._parse(parse_order, response.json(), url)

    def get_authorization(self, account: Account, url: str) -> Authorization:
        response = self._post(url, None, account.key, kid=account.kid)
        return self._parse(parse_authorization, response.json(), url)

    def accept_challenge(self, account: Account, url: str) -> Challenge:
        response = self._post(url, {}, account.key, kid=account.kid)
        return self._parse(parse_challenge, response.json())

    # -- finalization ---------------------------------------------------------

    def _backoff(self) -> Backoff:
        if self._poll is None:
            return Backoff()
        return Backoff(
            base=self._poll.poll_base_seconds,
            maximum=self._poll.poll_max_seconds,
            timeout=self._poll.poll_timeout_seconds,
        )

    def finalize(
        self,
        account: Account,
        order: Order,
        csr_der: bytes,
        *,
        bundle: bool = True,
        cancel: Cancellation | None = None,
    ) -> tuple[list[bytes], str | None]:
        response = self._post(
            order.finalize_url,
            {"csr": b64url_encode(csr_der)},
            account.key,
            kid=account.kid,
        )
        current = self._parse(parse_order, response.json(), order.url)

        backoff = self._backoff()
        cancel = cancel or Cancellation()
        last_error: RPCFailed | None = None
        while current.status in (OrderStatus.PROCESSING, OrderStatus.READY):
            delay = backoff.next_delay()
            if delay is None:
                msg = "Timed out waiting for the CA to issue the certificate"
                if last_error is not None:
                    msg = f"{msg} (last error: {last_error.detail})"
                raise RPCFailed(msg, cause=last_error, retryable=True, reference=order.url)
            cancel.wait(delay)
            try:
                current = self.get_order(account, order.url)
            except RPCFailed as exc:
                if not exc.retryable:
                    raise
                log.warning("Transient error polling order %s: %s", order.url, exc.detail)
                last_error = exc
            else:
                last_error = None

        if current.status != OrderStatus.VALID or not current.certificate_url:
            detail = (current.error or {}).get("detail", "")
            msg = f"Order ended in status '{current.status}' {detail}".strip()
            raise RPCFailed(msg, reference=order.url)

        cert_response = self._post(
            current.certificate_url,
            None,
            account.key,
            kid=account.kid,
            accept=PEM_CHAIN_CONTENT_TYPE,
        )
        try:
            chain = split_pem_chain(cert_response.body.decode("ascii"))
        except (UnicodeDecodeError, ValueError) as exc:
            msg = f"CA returned an unreadable certificate chain: {exc}"
            raise RPCFailed(msg, cause=exc, reference=current.certificate_url) from exc
        if not chain:
            msg = "CA returned an empty certificate chain"
            raise RPCFailed(msg, reference=current.certificate_url)

        log.info("Downloaded certificate %s", current.certificate_url)
        return (chain if bundle else chain[:1]), current.certificate_url

    # -- revocation -----------------------------------------------------------

    def revoke(
        self,
        key: PrivateKeyTypes,
        cert_der: bytes,
        reason: RevocationReason,
        *,
        kid: str | None = None,
    ) -> None:
        url = self._endpoint("revokeCert")
        payload = {"certificate": b64url_encode(cert_der), "reason": int(reason)}
        self._post(url, payload, key, kid=kid)
        log.info("Revoked certificate (reason=%d)", int(reason))
