"""Abstract base class for CA clients.

The engine talks to a certificate authority only through
:class:`CAClient`.  The concrete RFC 8555 implementation is
:class:`~acmelib.ca.acme_client.AcmeClient`; tests drive the engine
with in-memory subclasses.

Every method raises :class:`~acmelib.core.errors.RPCFailed` when the CA
cannot be reached or answers with an error document.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from acmelib.core.types import RevocationReason
    from acmelib.models import Account, Authorization, Challenge, Order, Registration
    from acmelib.services.backoff import Cancellation

log = logging.getLogger(__name__)


class CAClient(abc.ABC):
    """RPC capability against one ACME directory."""

    @abc.abstractmethod
    def terms_of_service(self) -> str | None:
        """Return the CA's terms-of-service URL, if it publishes one."""

    @abc.abstractmethod
    def register(
        self,
        key: PrivateKeyTypes,
        contact: Sequence[str],
        *,
        agree_tos: bool,
    ) -> Registration:
        """Create a new account for *key*.

        Raises
        ------
        AccountExistsError
            If the CA already holds an account for *key*.

        """

    @abc.abstractmethod
    def get_registration(self, key: PrivateKeyTypes) -> Registration:
        """Look up the existing account for *key*."""

    @abc.abstractmethod
    def update_contact(
        self,
        key: PrivateKeyTypes,
        kid: str,
        contact: Sequence[str],
    ) -> Registration:
        """Replace the contact list of the account at *kid* (RFC 8555 §7.3.2)."""

    @abc.abstractmethod
    def new_order(self, account: Account, domains: Sequence[str]) -> Order:
        """Request a new order for *domains*."""

    @abc.abstractmethod
    def get_authorization(self, account: Account, url: str) -> Authorization:
        """Fetch the authorization at *url*."""

    def poll_authorization(self, account: Account, url: str) -> Authorization:
        """Fetch the authorization once for status polling.

        Defaults to :meth:`get_authorization`.
        """
        return self.get_authorization(account, url)

    @abc.abstractmethod
    def accept_challenge(self, account: Account, url: str) -> Challenge:
        """Tell the CA the challenge at *url* is ready to be validated."""

    @abc.abstractmethod
    def finalize(
        self,
        account: Account,
        order: Order,
        csr_der: bytes,
        *,
        bundle: bool = True,
        cancel: Cancellation | None = None,
    ) -> tuple[list[bytes], str | None]:
        """Submit *csr_der* and download the issued certificate.

        Returns
        -------
        tuple
            ``(chain, certificate_url)`` where *chain* is a list of DER
            certificates, leaf first.  With ``bundle=False`` only the
            leaf is returned.

        """

    @abc.abstractmethod
    def revoke(
        self,
        key: PrivateKeyTypes,
        cert_der: bytes,
        reason: RevocationReason,
        *,
        kid: str | None = None,
    ) -> None:
        """Revoke *cert_der*, signing with *key* (as account *kid* if given)."""
