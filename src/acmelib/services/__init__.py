"""Issuance services.

Each service encapsulates one step of the ACME client workflow and
talks to the CA only through :class:`~acmelib.ca.base.CAClient`.
"""

from acmelib.services.account import AccountManager
from acmelib.services.backoff import Backoff, Cancellation
from acmelib.services.engine import IssuanceEngine
from acmelib.services.order import OrderCoordinator
from acmelib.services.revocation import RevocationHandler

__all__ = [
    "AccountManager",
    "Backoff",
    "Cancellation",
    "IssuanceEngine",
    "OrderCoordinator",
    "RevocationHandler",
]
