"""Entity models for the issuance engine.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from acmelib.models.account import Account, Registration
from acmelib.models.authorization import Authorization
from acmelib.models.certificate import CertificateBundle
from acmelib.models.challenge import Challenge, ChallengeRecord
from acmelib.models.order import Identifier, Order

__all__ = [
    "Account",
    "Authorization",
    "CertificateBundle",
    "Challenge",
    "ChallengeRecord",
    "Identifier",
    "Order",
    "Registration",
]
