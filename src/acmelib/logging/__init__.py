"""Logging subsystem for acmelib.

Public API::

    from acmelib.logging import configure_logging, issuance_context

    configure_logging(settings.logging)
"""

from acmelib.logging.setup import configure_logging, issuance_context

__all__ = ["configure_logging", "issuance_context"]
