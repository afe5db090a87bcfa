"""Redaction of key material before ACME payloads reach the logs.

:func:`sanitize_for_logs` walks a payload and masks JWK key values, PEM
bodies and the base64url DER blobs ACME carries in ``csr`` and
``certificate`` members.  Structure and metadata (key type, curve,
field names) survive so debug output stays useful.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# JWK members that carry key material
_JWK_KEY_MEMBERS = frozenset({"n", "e", "x", "y", "d", "p", "q", "dp", "dq", "qi", "k"})

# ACME payload members holding base64url-encoded DER
_DER_MEMBERS = frozenset({"csr", "certificate"})

_PEM_BLOCK_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)[\s\S]*?(-----END [A-Z0-9 ]+-----)",
)


def sanitize_jwk(jwk: dict) -> dict:
    """Copy *jwk* with every key-material member masked."""
    return {k: (REDACTED if k in _JWK_KEY_MEMBERS else v) for k, v in jwk.items()}


def sanitize_pem(pem: str) -> str:
    """Mask the body of each PEM block, keeping its BEGIN/END lines."""
    return _PEM_BLOCK_RE.sub(lambda m: f"{m.group(1)}\n{REDACTED}\n{m.group(2)}", pem)


def sanitize_for_logs(data: Any) -> Any:  # noqa: ANN401
    """Recursively mask sensitive material in *data*.

    Dicts with a ``kty`` member are treated as JWKs.  Other values pass
    through unchanged.
    """
    if isinstance(data, dict):
        if "kty" in data:
            return sanitize_jwk(data)
        return {
            k: (REDACTED if k in _DER_MEMBERS and isinstance(v, str) else sanitize_for_logs(v))
            for k, v in data.items()
        }

    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_logs(item) for item in data)

    if isinstance(data, str) and "-----BEGIN " in data:
        return sanitize_pem(data)

    return data
