"""Challenge provider registry.

Loads providers from configuration (built-in types and custom ``ext:``
extensions), binds each to the :class:`ChallengeStore` for its type and
provides lookup by challenge type.

Validates loaded classes on registration and logs warnings (without
crashing) when a single type fails to load.

Usage::

    from acmelib.challenge.registry import ProviderRegistry

    registry = ProviderRegistry(challenge_settings)
    provider = registry.get_provider(ChallengeType.DNS_01)
    provider.present(domain, token, key_auth)
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from acmelib.challenge.base import ChallengeProvider
from acmelib.challenge.store import DEFAULT_QUEUE_SIZE, ChallengeStore
from acmelib.core.types import ChallengeType

if TYPE_CHECKING:
    from acmelib.config.settings import ChallengeSettings

log = logging.getLogger(__name__)

# Maps config string -> (module_path, class_name, per-type settings attribute)
_BUILTIN_PROVIDERS: dict[str, tuple[str, str, str | None]] = {
    "http-01": ("acmelib.challenge.http01", "Http01Provider", "http01"),
    "dns-01": ("acmelib.challenge.dns01", "Dns01Provider", "dns01"),
}


class ProviderRegistry:
    """Registry of enabled challenge providers.

    Parameters
    ----------
    settings:
        The ``challenges`` section from :class:`AcmelibSettings`.
    stores:
        Pre-built stores keyed by challenge type.  Missing stores are
        created with the configured queue size.

    """

    def __init__(
        self,
        settings: ChallengeSettings,
        stores: dict[str, ChallengeStore] | None = None,
    ) -> None:
        self._settings = settings
        self._stores: dict[str, ChallengeStore] = dict(stores or {})
        self._providers: dict[str, ChallengeProvider] = {}
        self._load()

    def _load(self) -> None:
        """Load all enabled providers from configuration.

        Failures for individual types are logged as warnings; other
        types still load.
        """
        for type_str in self._settings.enabled:
            try:
                if type_str in _BUILTIN_PROVIDERS:
                    self._load_builtin(type_str)
                elif type_str.startswith("ext:"):
                    self._load_external(type_str[4:])
                else:
                    log.warning(
                        "Unknown challenge type '%s', skipping",
                        type_str,
                    )
            except Exception:
                log.exception(
                    "Failed to load challenge provider '%s', skipping",
                    type_str,
                )

    def _store_for(self, challenge_type: str) -> ChallengeStore:
        store = self._stores.get(challenge_type)
        if store is None:
            queue_size = getattr(self._settings, "queue_size", DEFAULT_QUEUE_SIZE)
            store = ChallengeStore(challenge_type, queue_size=queue_size)
            self._stores[challenge_type] = store
        return store

    def _load_builtin(self, type_str: str) -> None:
        """Load a built-in provider and register it."""
        mod_path, cls_name, settings_attr = _BUILTIN_PROVIDERS[type_str]
        module = importlib.import_module(mod_path)
        cls = getattr(module, cls_name)

        self._validate_class(cls, type_str)

        per_type_settings = getattr(self._settings, settings_attr, None) if settings_attr else None
        provider = cls(self._store_for(cls.challenge_type), settings=per_type_settings)

        self._providers[provider.challenge_type] = provider
        log.info("Loaded challenge provider: %s", type_str)

    def _load_external(self, fqn: str) -> None:
        """Load an external provider by fully-qualified class name.

        Parameters
        ----------
        fqn:
            e.g. ``"mycompany.acme.providers.Route53Provider"``

        """
        module_path, _, cls_name = fqn.rpartition(".")
        if not module_path:
            msg = (
                f"Invalid external provider '{fqn}': must be fully "
                "qualified (e.g. 'mypackage.module.ClassName')"
            )
            raise ValueError(msg)

        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)

        if not (isinstance(cls, type) and issubclass(cls, ChallengeProvider)):
            msg = f"External provider '{fqn}' must be a subclass of ChallengeProvider"
            raise TypeError(msg)

        self._validate_class(cls, f"ext:{fqn}")

        provider = cls(self._store_for(cls.challenge_type), settings=None)
        self._providers[provider.challenge_type] = provider
        log.info("Loaded external challenge provider: %s", fqn)

    @staticmethod
    def _validate_class(cls: type, label: str) -> None:
        """Verify that a provider class has the required attributes."""
        if not hasattr(cls, "challenge_type"):
            msg = f"Provider class '{label}' is missing the 'challenge_type' class attribute"
            raise TypeError(msg)

        challenge_type = cls.challenge_type
        if not isinstance(challenge_type, ChallengeType):
            msg = (
                f"Provider class '{label}' has challenge_type="
                f"{challenge_type!r}, which is not a valid ChallengeType"
            )
            raise TypeError(msg)

    def get_provider(self, challenge_type: str) -> ChallengeProvider:
        """Return the provider for a given challenge type.

        Raises
        ------
        KeyError
            If the challenge type is not enabled.

        """
        try:
            return self._providers[challenge_type]
        except KeyError:
            msg = f"No provider registered for challenge type '{challenge_type}'"
            raise KeyError(msg) from None

    def get_provider_or_none(self, challenge_type: str) -> ChallengeProvider | None:
        return self._providers.get(challenge_type)

    def get_store(self, challenge_type: str) -> ChallengeStore:
        """Return the store for an enabled challenge type.

        Raises
        ------
        KeyError
            If the challenge type is not enabled.

        """
        return self.get_provider(challenge_type).store

    def is_enabled(self, challenge_type: str) -> bool:
        """Check whether a challenge type is enabled and loaded."""
        return challenge_type in self._providers

    @property
    def enabled_types(self) -> list[str]:
        """Return the list of enabled challenge types."""
        return list(self._providers.keys())
