"""Abstract base class for challenge providers.

A provider publishes the proof the CA probes for one challenge type.
All providers (built-in and custom) must inherit from
:class:`ChallengeProvider` and implement :meth:`proof`; publication and
removal are recorded in the :class:`~acmelib.challenge.store.ChallengeStore`
the provider is bound to.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from acmelib.challenge.store import ChallengeStore
    from acmelib.core.types import ChallengeType
    from acmelib.services.backoff import Cancellation

log = logging.getLogger(__name__)


class ChallengeProvider(abc.ABC):
    """Base class for all challenge providers.

    Subclasses must set :attr:`challenge_type` as a class attribute and
    implement :meth:`proof`.

    Parameters
    ----------
    store:
        The store for this provider's challenge type.
    settings:
        Per-type settings (e.g. ``Http01Settings``, ``Dns01Settings``).

    """

    challenge_type: ClassVar[ChallengeType]
    """The ACME challenge type this provider handles."""

    def __init__(self, store: ChallengeStore, settings: Any = None) -> None:  # noqa: ANN401
        self.store = store
        self.settings = settings

    @abc.abstractmethod
    def proof(self, domain: str, token: str, key_auth: str) -> str:
        """Return the content the CA expects to find for this challenge."""

    def present(self, domain: str, token: str, key_auth: str) -> bool:
        """Publish the proof for *domain*.

        Presenting an identical proof twice is a no-op.

        Raises
        ------
        ProviderError
            When a different proof is still unresolved for *domain*, or
            the proof cannot be published.

        """
        return self.store.present(
            domain,
            token,
            self.proof(domain, token, key_auth),
            exclusive=True,
        )

    def cleanup(self, domain: str, token: str, key_auth: str) -> int:
        """Withdraw the proof.  Never fails when nothing was presented."""
        return self.store.cleanup(domain, token, self.proof(domain, token, key_auth))

    def mark_verified(self, domain: str, token: str, key_auth: str) -> bool:
        return self.store.mark_verified(domain, self.proof(domain, token, key_auth))

    def wait_until_visible(  # noqa: B027
        self,
        domain: str,
        token: str,
        key_auth: str,
        cancel: Cancellation | None = None,
    ) -> None:
        """Block until the proof can be observed by the CA.

        Default implementation is a no-op.
        """
