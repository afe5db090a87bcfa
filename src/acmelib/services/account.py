"""Account manager: idempotent ACME account registration (RFC 8555 §7.3).

Registers an account for a contact email, or recovers the existing one
when the CA already knows the key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmelib.core.errors import (
    AccountError,
    AccountErrorKind,
    AccountExistsError,
    RPCFailed,
)
from acmelib.core.keys import KeyManager
from acmelib.models.account import Account

if TYPE_CHECKING:
    from collections.abc import Callable

    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from acmelib.ca.base import CAClient

log = logging.getLogger(__name__)

_MAILTO_PREFIX = "mailto:"


def accept_all_terms(url: str | None) -> bool:  # noqa: ARG001
    """Default terms predicate: accept whatever the CA publishes."""
    return True


class AccountManager:
    """Ensure an account exists at the CA for a key.

    Parameters
    ----------
    ca_client:
        RPC capability for the target CA.
    key_manager:
        Source of fresh account keys.
    tos_predicate:
        Called with the CA's terms-of-service URL (or ``None``); the
        account is registered only when it returns ``True``.

    """

    def __init__(
        self,
        ca_client: CAClient,
        key_manager: KeyManager | None = None,
        tos_predicate: Callable[[str | None], bool] | None = None,
    ) -> None:
        self._ca = ca_client
        self._keys = key_manager or KeyManager()
        self._tos_predicate = tos_predicate or accept_all_terms

    def ensure_account(
        self,
        contact_email: str,
        key: PrivateKeyTypes | None = None,
    ) -> Account:
        """Return an account bound to a CA registration.

        Registers a new account, or retrieves the existing registration
        when the CA reports the key is already registered.  A retrieved
        registration whose contact differs from *contact_email* is
        updated, so the returned account always carries the contact the
        CA holds.

        Raises
        ------
        AccountError
            ``TERMS_DECLINED`` when the terms predicate refuses (no RPC is
            made); ``REGISTRATION_FAILED`` when the CA call fails.

        """
        if key is None:
            key = self._keys.generate_key()

        try:
            tos_url = self._ca.terms_of_service()
        except RPCFailed as exc:
            msg = f"Cannot read the CA directory: {exc.detail}"
            raise AccountError(
                msg,
                kind=AccountErrorKind.REGISTRATION_FAILED,
                cause=exc,
            ) from exc

        if not self._tos_predicate(tos_url):
            msg = f"Terms of service declined ({tos_url or 'no URL published'})"
            raise AccountError(msg, kind=AccountErrorKind.TERMS_DECLINED, reference=tos_url)

        contact = [f"{_MAILTO_PREFIX}{contact_email}"] if contact_email else []

        try:
            try:
                registration = self._ca.register(key, contact, agree_tos=True)
                log.info("Registered new account %s for %s", registration.uri, contact_email)
            except AccountExistsError as exc:
                log.info(
                    "Account already exists for this key (%s), retrieving it",
                    exc.location or "location unknown",
                )
                registration = self._ca.get_registration(key)
                if contact and tuple(registration.contact) != tuple(contact):
                    log.info(
                        "Updating contact of %s from %s to %s",
                        registration.uri,
                        ", ".join(registration.contact) or "(none)",
                        ", ".join(contact),
                    )
                    registration = self._ca.update_contact(key, registration.uri, contact)
        except RPCFailed as exc:
            msg = f"Account registration failed: {exc.detail}"
            raise AccountError(
                msg,
                kind=AccountErrorKind.REGISTRATION_FAILED,
                cause=exc,
            ) from exc

        if not contact_email:
            # No contact requested: an existing account keeps its own
            contact_email = _email_from_contact(registration.contact)
        return Account(email=contact_email, key=key, registration=registration)


def _email_from_contact(contact: tuple[str, ...]) -> str:
    for uri in contact:
        if uri.startswith(_MAILTO_PREFIX):
            return uri[len(_MAILTO_PREFIX) :]
    return ""
