"""Challenge providers, their stores and the HTTP-01 responder."""

from acmelib.challenge.base import ChallengeProvider
from acmelib.challenge.registry import ProviderRegistry
from acmelib.challenge.store import ChallengeStore

__all__ = [
    "ChallengeProvider",
    "ChallengeStore",
    "ProviderRegistry",
]
