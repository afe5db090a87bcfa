"""JWS signing and JWK utilities (RFC 7515 / 7517 / 7638, RFC 8555 §6.2).

Uses the ``cryptography`` library directly -- no josepy dependency.
Produces JWS Flattened JSON Serialization bodies for every request the
CA client sends and derives the challenge proofs (key authorization and
DNS-01 digest) from the account key.

Security note:
    This module handles raw cryptographic operations.  EC signatures
    must be converted from DER to the fixed-width ``r || s`` form JWS
    requires; the component width is taken from the curve, not from the
    signature.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa, utils

from acmelib.core.errors import CryptoError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

log = logging.getLogger(__name__)


# --- Base64url helpers (RFC 7515 S2) -------------------------------------


def b64url_decode(s: str) -> bytes:
    """Decode a base64url string (no padding required)."""
    s = s.replace("-", "+").replace("_", "/")
    remainder = len(s) % 4
    if remainder:
        s += "=" * (4 - remainder)
    return base64.b64decode(s)


def b64url_encode(b: bytes) -> str:
    """Encode bytes to base64url without padding."""
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def _int_to_b64(value: int, length: int | None = None) -> str:
    if length is None:
        length = max(1, (value.bit_length() + 7) // 8)
    return b64url_encode(value.to_bytes(length, "big"))


# --- Algorithm dispatch --------------------------------------------------

# Maps curve name to (JWA alg, JWK crv, hash, component byte length)
_EC_ALGORITHMS: dict[str, tuple[str, str, hashes.HashAlgorithm, int]] = {
    "secp256r1": ("ES256", "P-256", hashes.SHA256(), 32),
    "secp384r1": ("ES384", "P-384", hashes.SHA384(), 48),
    "secp521r1": ("ES512", "P-521", hashes.SHA512(), 66),
}


def signing_algorithm(key: PrivateKeyTypes) -> str:
    """Return the JWA algorithm name used to sign with *key*."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        entry = _EC_ALGORITHMS.get(key.curve.name)
        if entry is None:
            msg = f"Unsupported EC curve '{key.curve.name}'"
            raise CryptoError(msg)
        return entry[0]
    if isinstance(key, rsa.RSAPrivateKey):
        return "RS256"
    msg = f"Unsupported account key type '{type(key).__name__}'"
    raise CryptoError(msg)


# --- JWK export and thumbprint (RFC 7517 / 7638) -------------------------


def public_jwk(key: PrivateKeyTypes) -> dict[str, Any]:
    """Return the public JWK for *key* (EC or RSA)."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        entry = _EC_ALGORITHMS.get(key.curve.name)
        if entry is None:
            msg = f"Unsupported EC curve '{key.curve.name}'"
            raise CryptoError(msg)
        _, crv, _, size = entry
        numbers = key.public_key().public_numbers()
        return {
            "kty": "EC",
            "crv": crv,
            "x": _int_to_b64(numbers.x, size),
            "y": _int_to_b64(numbers.y, size),
        }
    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.public_key().public_numbers()
        return {
            "kty": "RSA",
            "e": _int_to_b64(numbers.e),
            "n": _int_to_b64(numbers.n),
        }
    msg = f"Unsupported account key type '{type(key).__name__}'"
    raise CryptoError(msg)


def compute_thumbprint(jwk_dict: dict[str, Any]) -> str:
    """Compute the RFC 7638 JWK Thumbprint using SHA-256.

    Construct the canonical JSON representation with required members
    in lexicographic order, then return the base64url-encoded SHA-256
    hash.
    """
    kty = jwk_dict.get("kty")

    if kty == "RSA":
        canonical = {
            "e": jwk_dict["e"],
            "kty": "RSA",
            "n": jwk_dict["n"],
        }
    elif kty == "EC":
        canonical = {
            "crv": jwk_dict["crv"],
            "kty": "EC",
            "x": jwk_dict["x"],
            "y": jwk_dict["y"],
        }
    else:
        msg = f"Cannot compute thumbprint for kty '{kty}'"
        raise CryptoError(msg)

    # RFC 7638 requires members in lexicographic order, no whitespace
    canonical_json = json.dumps(
        canonical,
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(canonical_json.encode("ascii")).digest()
    return b64url_encode(digest)


# --- Challenge proofs (RFC 8555 §8.1, §8.4) ------------------------------


def key_authorization(token: str, jwk_dict: dict[str, Any]) -> str:
    """Compute the key authorization string: ``token.thumbprint``."""
    thumbprint = compute_thumbprint(jwk_dict)
    return f"{token}.{thumbprint}"


def dns01_txt_value(key_authz: str) -> str:
    """Return the DNS-01 TXT value: base64url(SHA-256(key authorization))."""
    digest = hashlib.sha256(key_authz.encode("ascii")).digest()
    return b64url_encode(digest)


# --- JWS signing ---------------------------------------------------------


def _sign(key: PrivateKeyTypes, signing_input: bytes) -> bytes:
    if isinstance(key, ec.EllipticCurvePrivateKey):
        _, _, hash_alg, size = _EC_ALGORITHMS[key.curve.name]
        der = key.sign(signing_input, ec.ECDSA(hash_alg))
        r, s = utils.decode_dss_signature(der)
        return r.to_bytes(size, "big") + s.to_bytes(size, "big")
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())
    msg = f"Unsupported account key type '{type(key).__name__}'"
    raise CryptoError(msg)


def sign_jws(
    key: PrivateKeyTypes,
    payload: Any,  # noqa: ANN401
    *,
    url: str,
    nonce: str | None,
    kid: str | None = None,
) -> dict[str, str]:
    """Build a JWS Flattened JSON Serialization for an ACME request.

    Parameters
    ----------
    key:
        The private key to sign with.
    payload:
        JSON-serialisable payload, or ``None`` for POST-as-GET
        (RFC 8555 §6.3), which is encoded as the empty string.
    url:
        The request URL, bound into the protected header.
    nonce:
        A fresh replay nonce (``None`` only for the inner EAB/key-change
        objects, which the engine does not send).
    kid:
        The account URL.  When ``None`` the public ``jwk`` is embedded
        instead (newAccount, revocation by certificate key).

    Returns
    -------
    dict
        ``{"protected": ..., "payload": ..., "signature": ...}``

    """
    protected: dict[str, Any] = {"alg": signing_algorithm(key), "url": url}
    if nonce is not None:
        protected["nonce"] = nonce
    if kid is not None:
        protected["kid"] = kid
    else:
        protected["jwk"] = public_jwk(key)

    protected_b64 = b64url_encode(
        json.dumps(protected, separators=(",", ":")).encode("utf-8"),
    )
    if payload is None:
        payload_b64 = ""
    else:
        payload_b64 = b64url_encode(
            json.dumps(payload, separators=(",", ":")).encode("utf-8"),
        )

    signing_input = f"{protected_b64}.{payload_b64}".encode("ascii")
    try:
        signature = _sign(key, signing_input)
    except CryptoError:
        raise
    except Exception as exc:  # noqa: BLE001
        msg = f"JWS signing failed: {exc}"
        raise CryptoError(msg, reference=url) from exc

    return {
        "protected": protected_b64,
        "payload": payload_b64,
        "signature": b64url_encode(signature),
    }
