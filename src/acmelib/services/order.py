"""Order coordinator: the RFC 8555 issuance state machine (§7.4, §7.5).

One :meth:`OrderCoordinator.issue` call drives a single order from
creation to a downloaded certificate::

    created -> authorizations_pending -> challenge_selected
            -> challenge_published -> polling -> finalizing -> valid

Any failure moves the run to ``invalid`` (or ``cancelled``).  Whatever
the outcome, every proof the run published is withdrawn before the call
returns.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmelib.core.errors import (
    Cancelled,
    ChallengeValidationFailed,
    NoMatchingChallenge,
    RPCFailed,
)
from acmelib.core.jws import key_authorization, public_jwk
from acmelib.core.keys import KeyManager, der_to_pem, private_key_to_pem
from acmelib.core.state import (
    ISSUANCE_TRANSITIONS,
    TERMINAL_STATES,
    assert_transition,
    log_transition,
)
from acmelib.core.types import AuthorizationStatus, IssuanceState
from acmelib.models.certificate import CertificateBundle
from acmelib.services.backoff import Backoff, Cancellation

if TYPE_CHECKING:
    from collections.abc import Sequence

    from acmelib.ca.base import CAClient
    from acmelib.challenge.base import ChallengeProvider
    from acmelib.challenge.registry import ProviderRegistry
    from acmelib.config.settings import OrderSettings
    from acmelib.models import Account, Authorization, Challenge

log = logging.getLogger(__name__)

_S = IssuanceState


def normalize_domains(domains: Sequence[str]) -> list[str]:
    """Lower-case, strip trailing dots and de-duplicate, keeping order.

    Raises
    ------
    ValueError
        If no domain remains.

    """
    result: list[str] = []
    for raw in domains:
        domain = raw.strip().lower().rstrip(".")
        if domain and domain not in result:
            result.append(domain)
    if not result:
        msg = "At least one domain is required"
        raise ValueError(msg)
    return result


class _Run:
    """Tracks the state of one issuance attempt."""

    def __init__(self) -> None:
        self.state = _S.CREATED
        self.order_url: str | None = None
        # (provider, domain, token, key_auth) for every proof this run inserted
        self.published: list[tuple[ChallengeProvider, str, str, str]] = []

    def advance(self, target: IssuanceState, reason: str | None = None) -> None:
        assert_transition(self.state, target, ISSUANCE_TRANSITIONS)
        log_transition(self.order_url, self.state, target, reason=reason)
        self.state = target

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class OrderCoordinator:
    """Drives orders through authorization, validation and finalization.

    Parameters
    ----------
    ca_client:
        RPC capability for the target CA.
    registry:
        Enabled challenge providers.
    key_manager:
        Source of certificate keys and CSRs.
    poll:
        Polling schedule; defaults to 1s doubling, capped at 30s, with a
        300s ceiling per authorization.

    """

    def __init__(
        self,
        ca_client: CAClient,
        registry: ProviderRegistry,
        key_manager: KeyManager | None = None,
        poll: OrderSettings | None = None,
    ) -> None:
        self._ca = ca_client
        self._registry = registry
        self._keys = key_manager or KeyManager()
        self._poll = poll

    def _backoff(self) -> Backoff:
        if self._poll is None:
            return Backoff()
        return Backoff(
            base=self._poll.poll_base_seconds,
            maximum=self._poll.poll_max_seconds,
            timeout=self._poll.poll_timeout_seconds,
        )

    # -- public API -----------------------------------------------------------

    def issue(
        self,
        account: Account,
        domains: Sequence[str],
        challenge_type: str,
        cancel: Cancellation | None = None,
    ) -> CertificateBundle:
        """Obtain a certificate for *domains* using *challenge_type*.

        Raises
        ------
        NoMatchingChallenge
            The CA did not offer *challenge_type* for some domain, or the
            type is not enabled locally.  Nothing is presented.
        ChallengeValidationFailed
            The CA rejected a proof.  No other challenge type is tried.
        ProviderError
            A proof could not be published.
        RPCFailed
            The CA failed, or an authorization stayed pending past the
            polling ceiling.
        Cancelled
            *cancel* fired or its deadline passed.

        """
        domains = normalize_domains(domains)
        cancel = cancel or Cancellation()
        run = _Run()

        try:
            return self._issue(run, account, domains, challenge_type, cancel)
        except Cancelled as exc:
            if not run.finished:
                run.advance(_S.CANCELLED, reason=str(exc))
            raise
        except Exception as exc:
            if not run.finished:
                run.advance(_S.INVALID, reason=f"{type(exc).__name__}: {exc}")
            raise
        finally:
            self._cleanup(run)

    # -- state machine --------------------------------------------------------

    def _issue(
        self,
        run: _Run,
        account: Account,
        domains: list[str],
        challenge_type: str,
        cancel: Cancellation,
    ) -> CertificateBundle:
        provider = self._registry.get_provider_or_none(challenge_type)
        if provider is None:
            msg = f"Challenge type '{challenge_type}' is not enabled"
            raise NoMatchingChallenge(msg, challenge_type=challenge_type)

        cancel.raise_if_cancelled()
        order = self._ca.new_order(account, domains)
        run.order_url = order.url
        log.info("Created order %s for %s", order.url, ", ".join(domains))

        run.advance(_S.AUTHORIZATIONS_PENDING)
        pending = self._pending_authorizations(account, order.authorizations)

        if pending:
            run.advance(_S.CHALLENGE_SELECTED)
            selected = [(authz, self._select(authz, challenge_type)) for authz in pending]

            jwk = public_jwk(account.key)
            for authz, challenge in selected:
                cancel.raise_if_cancelled()
                key_auth = key_authorization(challenge.token, jwk)
                if provider.present(authz.domain, challenge.token, key_auth):
                    run.published.append((provider, authz.domain, challenge.token, key_auth))
                provider.wait_until_visible(authz.domain, challenge.token, key_auth, cancel)
                self._ca.accept_challenge(account, challenge.url)
                log.info("Challenge %s for %s is ready for validation", challenge.url, authz.domain)
            run.advance(_S.CHALLENGE_PUBLISHED)

            run.advance(_S.POLLING)
            for authz, challenge in selected:
                self._wait_for_validation(account, authz, challenge_type, cancel)
                provider.mark_verified(
                    authz.domain,
                    challenge.token,
                    key_authorization(challenge.token, jwk),
                )

        run.advance(_S.FINALIZING)
        cancel.raise_if_cancelled()
        cert_key = self._keys.generate_key()
        csr_der = self._keys.build_csr(cert_key, domains)
        chain_der, cert_url = self._ca.finalize(account, order, csr_der, bundle=True, cancel=cancel)

        pems = [der_to_pem(der) for der in chain_der]
        bundle = CertificateBundle(
            domains=tuple(domains),
            certificate=pems[0],
            chain=tuple(pems[1:]),
            fullchain="".join(pems),
            private_key=private_key_to_pem(cert_key),
            finalize_url=order.finalize_url,
            certificate_url=cert_url,
        )
        run.advance(_S.VALID)
        log.info("Issued certificate for %s", ", ".join(domains))
        return bundle

    def _pending_authorizations(
        self,
        account: Account,
        urls: Sequence[str],
    ) -> list[Authorization]:
        """Fetch every authorization; return those still needing a proof."""
        pending = []
        for url in urls:
            authz = self._ca.get_authorization(account, url)
            if authz.status == AuthorizationStatus.VALID:
                log.info("Authorization for %s is already valid, reusing it", authz.domain)
                continue
            if authz.status != AuthorizationStatus.PENDING:
                msg = f"Authorization for {authz.domain} is {authz.status}"
                raise ChallengeValidationFailed(
                    msg,
                    reason=str(authz.status),
                    domain=authz.domain,
                    reference=authz.url,
                )
            pending.append(authz)
        return pending

    @staticmethod
    def _select(authz: Authorization, challenge_type: str) -> Challenge:
        challenge = authz.find_challenge(challenge_type)
        if challenge is None:
            offered = ", ".join(c.type for c in authz.challenges) or "none"
            msg = f"CA offered no {challenge_type} challenge for {authz.domain} (offered: {offered})"
            raise NoMatchingChallenge(
                msg,
                domain=authz.domain,
                reference=authz.url,
                challenge_type=challenge_type,
            )
        return challenge

    def _wait_for_validation(
        self,
        account: Account,
        authz: Authorization,
        challenge_type: str,
        cancel: Cancellation,
    ) -> None:
        """Poll one authorization until it leaves ``pending``.

        Transient RPC failures are retried until the polling ceiling; a
        non-retryable failure is raised at once.
        """
        backoff = self._backoff()
        last_error: RPCFailed | None = None

        while True:
            cancel.raise_if_cancelled()
            try:
                current = self._ca.poll_authorization(account, authz.url)
            except RPCFailed as exc:
                if not exc.retryable:
                    raise
                last_error = exc
                log.warning("Polling %s failed, will retry: %s", authz.url, exc)
            else:
                if current.status == AuthorizationStatus.VALID:
                    log.info("Authorization for %s is valid", authz.domain)
                    return
                if current.status != AuthorizationStatus.PENDING:
                    reason = _failure_reason(current, challenge_type)
                    msg = f"Validation of {authz.domain} failed: {reason}"
                    raise ChallengeValidationFailed(
                        msg,
                        reason=reason,
                        domain=authz.domain,
                        reference=authz.url,
                        challenge_type=challenge_type,
                    )

            delay = backoff.next_delay()
            if delay is None:
                msg = f"Authorization for {authz.domain} still pending after {backoff.timeout}s"
                raise RPCFailed(
                    msg,
                    cause=last_error,
                    retryable=True,
                    domain=authz.domain,
                    reference=authz.url,
                )
            cancel.wait(delay)

    @staticmethod
    def _cleanup(run: _Run) -> None:
        """Withdraw every proof this run published; never raises."""
        for provider, domain, token, key_auth in reversed(run.published):
            try:
                provider.cleanup(domain, token, key_auth)
            except Exception:
                log.exception("Failed to clean up %s challenge for %s", provider.challenge_type, domain)
        run.published.clear()


def _failure_reason(authz: Authorization, challenge_type: str) -> str:
    challenge = authz.find_challenge(challenge_type)
    error = challenge.error if challenge is not None else None
    if error:
        return str(error.get("detail") or error.get("type") or error)
    return f"authorization {authz.status}"
