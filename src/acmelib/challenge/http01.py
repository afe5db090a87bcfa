"""HTTP-01 challenge provider (RFC 8555 §8.3).

The proof is the key authorization, served at
``/.well-known/acme-challenge/{token}`` by the responder app.  When a
``webroot`` is configured the proof is also written below it so an
existing web server can answer the probe.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from acmelib.challenge.base import ChallengeProvider
from acmelib.core.errors import ProviderError, ProviderErrorKind
from acmelib.core.types import ChallengeType

if TYPE_CHECKING:
    from acmelib.challenge.store import ChallengeStore
    from acmelib.config.settings import Http01Settings

log = logging.getLogger(__name__)

WELL_KNOWN_PATH = ".well-known/acme-challenge"


class Http01Provider(ChallengeProvider):
    """HTTP-01 challenge provider (RFC 8555 §8.3)."""

    challenge_type = ChallengeType.HTTP_01

    def __init__(
        self,
        store: ChallengeStore,
        settings: Http01Settings | None = None,
    ) -> None:
        super().__init__(store, settings=settings)
        webroot = getattr(settings, "webroot", None)
        self._webroot = Path(webroot) if webroot else None

    def proof(self, domain: str, token: str, key_auth: str) -> str:
        return key_auth

    @staticmethod
    def path_for(token: str) -> str:
        """The URL path the CA requests for *token*."""
        return f"/{WELL_KNOWN_PATH}/{token}"

    def present(self, domain: str, token: str, key_auth: str) -> bool:
        path = self._token_path(token, domain) if self._webroot is not None else None
        inserted = super().present(domain, token, key_auth)
        if inserted and path is not None:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(key_auth, encoding="ascii")
            except OSError as exc:
                self.store.cleanup(domain, token, key_auth)
                msg = f"Cannot write HTTP-01 token file: {exc}"
                raise ProviderError(
                    msg,
                    kind=ProviderErrorKind.PUBLISH_FAILED,
                    domain=domain,
                    challenge_type=self.challenge_type,
                ) from exc
            log.debug("Wrote HTTP-01 token file %s", path)
        return inserted

    def cleanup(self, domain: str, token: str, key_auth: str) -> int:
        removed = super().cleanup(domain, token, key_auth)
        if self._webroot is not None and _safe_token(token):
            path = self._webroot / WELL_KNOWN_PATH / token
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("Failed to remove HTTP-01 token file %s: %s", path, exc)
        return removed

    def lookup(self, token: str) -> str | None:
        """Return the key authorization published for *token*, if any."""
        record = self.store.find_by_token(token)
        return record.content if record is not None else None

    def _token_path(self, token: str, domain: str) -> Path:
        if not _safe_token(token):
            msg = f"Refusing unsafe HTTP-01 token {token!r}"
            raise ProviderError(
                msg,
                kind=ProviderErrorKind.PUBLISH_FAILED,
                domain=domain,
                challenge_type=self.challenge_type,
            )
        return self._webroot / WELL_KNOWN_PATH / token


def _safe_token(token: str) -> bool:
    # Tokens are base64url; anything else could escape the webroot
    return bool(token) and "/" not in token and "\\" not in token and not token.startswith(".")
