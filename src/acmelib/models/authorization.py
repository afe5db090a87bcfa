"""Authorization entity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from acmelib.core.types import AuthorizationStatus
    from acmelib.models.challenge import Challenge
    from acmelib.models.order import Identifier


@dataclass(frozen=True)
class Authorization:
    url: str
    identifier: Identifier
    status: AuthorizationStatus
    challenges: tuple[Challenge, ...] = ()
    wildcard: bool = False
    expires: datetime | None = None

    @property
    def domain(self) -> str:
        """The identifier value, with ``*.`` restored for wildcards."""
        value = self.identifier.value
        if self.wildcard and not value.startswith("*."):
            return f"*.{value}"
        return value

    def find_challenge(self, challenge_type: str) -> Challenge | None:
        """Return the first offered challenge of *challenge_type*."""
        for challenge in self.challenges:
            if challenge.type == challenge_type:
                return challenge
        return None
