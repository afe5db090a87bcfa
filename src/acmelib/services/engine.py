"""Issuance engine: the public entry point.

Wires :class:`AccountManager`, :class:`OrderCoordinator` and
:class:`RevocationHandler` around one long-lived account key.  Build it
with :func:`acmelib.app.factory.create_engine`.

Usage::

    engine = create_engine(get_config().settings)
    bundle = engine.issue(["example.com", "www.example.com"], "http-01")
    engine.revoke(bundle.certificate, reason_code=4)
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from acmelib.core.keys import KeyManager, load_private_key_pem, private_key_to_pem
from acmelib.logging.setup import issuance_context
from acmelib.services.account import AccountManager
from acmelib.services.order import OrderCoordinator
from acmelib.services.revocation import RevocationHandler

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from acmelib.ca.base import CAClient
    from acmelib.challenge.registry import ProviderRegistry
    from acmelib.config.settings import AcmelibSettings
    from acmelib.models import Account, CertificateBundle
    from acmelib.services.backoff import Cancellation

log = logging.getLogger(__name__)

_KEY_FILE_MODE = 0o600


class IssuanceEngine:
    """Issue, revoke and inspect challenges against one CA.

    Parameters
    ----------
    settings:
        Full settings tree.
    ca_client:
        RPC capability for the configured CA.
    registry:
        Enabled challenge providers and their stores.
    key_manager:
        Key and CSR source.
    tos_predicate:
        Terms-of-service decision; defaults to ``account.agree_tos``.

    """

    def __init__(  # noqa: PLR0913
        self,
        settings: AcmelibSettings,
        ca_client: CAClient,
        registry: ProviderRegistry,
        key_manager: KeyManager | None = None,
        *,
        tos_predicate: Callable[[str | None], bool] | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._keys = key_manager or KeyManager()
        if tos_predicate is None:
            agree = settings.account.agree_tos

            def tos_predicate(url: str | None) -> bool:  # noqa: ARG001
                return agree

        self.accounts = AccountManager(ca_client, self._keys, tos_predicate)
        self.orders = OrderCoordinator(ca_client, registry, self._keys, poll=settings.order)
        self.revocations = RevocationHandler(ca_client)

        self._lock = threading.Lock()
        self._account_key: PrivateKeyTypes | None = None
        self._accounts: dict[str, Account] = {}

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # -- account key ----------------------------------------------------------

    def account_key(self) -> PrivateKeyTypes:
        """Return the engine's account key, loading or creating it once."""
        with self._lock:
            if self._account_key is None:
                self._account_key = self._load_or_create_key()
            return self._account_key

    def _load_or_create_key(self) -> PrivateKeyTypes:
        key_file = self._settings.account.key_file
        if not key_file:
            log.info("No account.key_file configured, using an ephemeral account key")
            return self._keys.generate_key()

        path = Path(key_file)
        if path.exists():
            log.info("Loading account key from %s", path)
            return load_private_key_pem(path.read_bytes())

        key = self._keys.generate_key()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, _KEY_FILE_MODE)
        with os.fdopen(fd, "w", encoding="ascii") as fh:
            fh.write(private_key_to_pem(key))
        log.info("Created account key %s", path)
        return key

    def account(self, contact_email: str | None = None) -> Account:
        """Return the registered account for *contact_email* (cached)."""
        email = contact_email or self._settings.account.email or ""
        key = self.account_key()
        with self._lock:
            cached = self._accounts.get(email)
        if cached is not None:
            return cached
        account = self.accounts.ensure_account(email, key=key)
        with self._lock:
            self._accounts.setdefault(email, account)
        return account

    # -- public API -----------------------------------------------------------

    def issue(
        self,
        domains: Sequence[str],
        challenge_type: str,
        contact_email: str | None = None,
        cancel: Cancellation | None = None,
    ) -> CertificateBundle:
        """Obtain a certificate for *domains*.

        See :meth:`OrderCoordinator.issue` for the errors raised.
        """
        with issuance_context(domains) as issuance_id:
            log.info(
                "Issuance %s started for %s via %s",
                issuance_id,
                ", ".join(domains),
                challenge_type,
            )
            account = self.account(contact_email)
            return self.orders.issue(account, domains, challenge_type, cancel)

    def revoke(self, certificate_pem: str | bytes, reason_code: int = 0) -> None:
        """Revoke a certificate issued to the engine's account.

        The certificate and reason are checked before the account is
        resolved, so rejected input never reaches the CA.
        """
        self.revocations.validate(certificate_pem, reason_code)
        account = self.account()
        self.revocations.revoke(certificate_pem, account, reason_code)

    def list_pending_challenges(self, challenge_type: str) -> str:
        """Return the published records of *challenge_type* as a JSON array.

        Raises
        ------
        KeyError
            If the challenge type is not enabled.

        """
        return self._registry.get_store(challenge_type).snapshot().decode("utf-8")
