"""Configuration subsystem for acmelib.

Public API::

    from acmelib.config import get_config, AcmelibConfig

    # At startup:
    AcmelibConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    url = cfg.settings.ca.directory_url      # typed access
    resolvers = cfg.get("challenges.dns01.resolvers")
"""

from acmelib.config.acmelib_config import (
    AcmelibConfig,
    ConfigValidationError,
    get_config,
)
from acmelib.config.settings import (
    AccountSettings,
    AcmelibSettings,
    CASettings,
    ChallengeSettings,
    Dns01Settings,
    Http01Settings,
    LoggingSettings,
    OrderSettings,
    ResponderSettings,
    build_settings,
)

__all__ = [
    "AccountSettings",
    "AcmelibConfig",
    "AcmelibSettings",
    "CASettings",
    "ChallengeSettings",
    "ConfigValidationError",
    "Dns01Settings",
    "Http01Settings",
    "LoggingSettings",
    "OrderSettings",
    "ResponderSettings",
    "build_settings",
    "get_config",
]
