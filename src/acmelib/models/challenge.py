"""Challenge entity and the locally published ChallengeRecord."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from acmelib.core.types import ChallengeStatus


@dataclass(frozen=True)
class Challenge:
    url: str
    type: str
    token: str
    status: ChallengeStatus
    error: dict | None = None
    validated: datetime | None = None


@dataclass(frozen=True)
class ChallengeRecord:
    """A proof published by a provider and awaiting CA validation.

    ``content`` is the key authorization for HTTP-01 and the TXT digest
    for DNS-01.
    """

    type: str
    domain: str
    token: str
    content: str
    verified: bool = False

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "identifier": self.domain,
            "content": self.content,
            "verified": self.verified,
        }
