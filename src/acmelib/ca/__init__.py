"""Certificate-authority RPC capability.

:class:`CAClient` is the abstract interface the engine depends on;
:class:`AcmeClient` speaks RFC 8555 to a real CA.
"""

from acmelib.ca.acme_client import AcmeClient
from acmelib.ca.base import CAClient

__all__ = ["AcmeClient", "CAClient"]
