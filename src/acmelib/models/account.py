"""Account and Registration entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from acmelib.core.types import AccountStatus


@dataclass(frozen=True)
class Registration:
    """The CA-side account resource."""

    uri: str
    status: AccountStatus
    contact: tuple[str, ...] = ()
    orders: str | None = None
    terms_of_service_agreed: bool = False


@dataclass(frozen=True)
class Account:
    email: str
    key: PrivateKeyTypes
    registration: Registration | None = None

    @property
    def kid(self) -> str | None:
        """The account URL used as the JWS ``kid``."""
        return self.registration.uri if self.registration is not None else None

    def __repr__(self) -> str:
        # The private key never appears in reprs or logs.
        uri = self.kid or "-"
        return f"Account(email={self.email!r}, registration={uri!r})"
