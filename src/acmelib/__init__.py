"""acmelib: ACME (RFC 8555) certificate issuance engine."""

__version__ = "0.1.0"
