"""DNS-01 challenge provider (RFC 8555 §8.4).

The proof is the base64url-encoded SHA-256 digest of the key
authorization, to be published as a TXT record at
``_acme-challenge.{domain}``.  This provider does not talk to a DNS
server: records are queued in the store for an external publisher to
pick up via :meth:`~acmelib.challenge.store.ChallengeStore.next_ready`.

When ``precheck`` is enabled the provider waits (with dnspython) until
the TXT value is visible before the CA is asked to validate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import dns.exception
import dns.resolver

from acmelib.challenge.base import ChallengeProvider
from acmelib.core.jws import dns01_txt_value
from acmelib.core.types import ChallengeType
from acmelib.services.backoff import Backoff, Cancellation

if TYPE_CHECKING:
    from acmelib.challenge.store import ChallengeStore
    from acmelib.config.settings import Dns01Settings

log = logging.getLogger(__name__)


def record_name(domain: str) -> str:
    """Return the TXT record name for *domain* (wildcard prefix stripped)."""
    return f"_acme-challenge.{domain.removeprefix('*.')}"


class Dns01Provider(ChallengeProvider):
    """DNS-01 challenge provider (RFC 8555 §8.4).

    Records are keyed by the domain as requested, so ``example.com`` and
    ``*.example.com`` hold independent proofs even though both map to the
    same TXT name.
    """

    challenge_type = ChallengeType.DNS_01

    def __init__(
        self,
        store: ChallengeStore,
        settings: Dns01Settings | None = None,
    ) -> None:
        super().__init__(store, settings=settings)

    def proof(self, domain: str, token: str, key_auth: str) -> str:
        return dns01_txt_value(key_auth)

    def wait_until_visible(
        self,
        domain: str,
        token: str,
        key_auth: str,
        cancel: Cancellation | None = None,
    ) -> None:
        """Poll resolvers until the TXT value appears.

        Does nothing unless ``precheck`` is enabled.  When the record is
        still missing after ``precheck_timeout_seconds`` a warning is
        logged and issuance proceeds; the CA makes the final decision.
        """
        if not getattr(self.settings, "precheck", False):
            return

        expected = self.proof(domain, token, key_auth)
        name = record_name(domain)
        timeout = getattr(self.settings, "precheck_timeout_seconds", 120)
        backoff = Backoff(base=2.0, maximum=15.0, timeout=timeout)
        cancel = cancel or Cancellation()

        while True:
            if expected in self._lookup_txt(name):
                log.info("DNS-01 pre-check: %s is visible", name)
                return
            delay = backoff.next_delay()
            if delay is None:
                log.warning(
                    "DNS-01 pre-check: %s not visible after %ss, proceeding",
                    name,
                    timeout,
                )
                return
            cancel.wait(delay)

    def _lookup_txt(self, name: str) -> set[str]:
        resolver = dns.resolver.Resolver()
        resolvers = getattr(self.settings, "resolvers", ())
        if resolvers:
            resolver.nameservers = list(resolvers)
        resolver.lifetime = getattr(self.settings, "timeout_seconds", 30)

        try:
            answer = resolver.resolve(name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return set()
        except dns.exception.DNSException as exc:
            log.debug("DNS-01 pre-check query for %s failed: %s", name, exc)
            return set()

        values: set[str] = set()
        for rdata in answer:
            values.add(b"".join(rdata.strings).decode("ascii", "replace"))
        return values
