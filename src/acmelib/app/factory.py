"""Engine factory for acmelib.

Usage::

    from acmelib.app import create_engine
    from acmelib.config import get_config

    engine = create_engine(get_config().settings)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from acmelib.ca.acme_client import AcmeClient
from acmelib.challenge.registry import ProviderRegistry
from acmelib.challenge.store import ChallengeStore
from acmelib.core.keys import KeyManager
from acmelib.services.engine import IssuanceEngine

if TYPE_CHECKING:
    from collections.abc import Callable

    from acmelib.ca.base import CAClient
    from acmelib.config.settings import AcmelibSettings

log = logging.getLogger(__name__)


def create_stores(settings: AcmelibSettings) -> dict[str, ChallengeStore]:
    """Build one challenge store per enabled built-in challenge type."""
    stores: dict[str, ChallengeStore] = {}
    for type_str in settings.challenges.enabled:
        if type_str.startswith("ext:"):
            # External providers get a store once their type is known
            continue
        stores[type_str] = ChallengeStore(
            type_str,
            queue_size=settings.challenges.queue_size,
        )
    return stores


def create_engine(
    settings: AcmelibSettings,
    *,
    ca_client: CAClient | None = None,
    tos_predicate: Callable[[str | None], bool] | None = None,
) -> IssuanceEngine:
    """Create a fully wired :class:`IssuanceEngine`.

    Parameters
    ----------
    settings:
        Loaded settings tree.
    ca_client:
        Overrides the RFC 8555 client (tests pass a stub here).
    tos_predicate:
        Terms-of-service decision; defaults to ``account.agree_tos``.

    """
    stores = create_stores(settings)
    registry = ProviderRegistry(settings.challenges, stores)
    if not registry.enabled_types:
        log.warning("No challenge providers loaded; issuance will fail")

    if ca_client is None:
        ca_client = AcmeClient(settings.ca, poll=settings.order)

    engine = IssuanceEngine(
        settings,
        ca_client,
        registry,
        KeyManager(),
        tos_predicate=tos_predicate,
    )
    log.info(
        "Issuance engine ready (CA=%s, challenges=%s)",
        settings.ca.directory_url,
        ", ".join(registry.enabled_types) or "none",
    )
    return engine
