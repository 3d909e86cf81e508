"""RS256 JWT assertions for the OAuth 2.0 JWT-bearer grant.

The assertion is ``base64url(header).base64url(claims).base64url(signature)``
where the signature is RSASSA-PKCS1-v1_5 over SHA-256 of the first two parts.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from geodispatch.exceptions import AuthError


def b64url(data: bytes) -> str:
    """Unpadded URL-safe base64, as required by RFC 7515."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _json_segment(value: dict[str, Any]) -> str:
    return b64url(json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8"))


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """Load an unencrypted PEM RSA private key.

    Raises
    ------
    AuthError
        If the PEM cannot be parsed or is not an RSA key.
    """
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise AuthError(f"Cannot load service account private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise AuthError("Service account private key must be an RSA key")
    return key


def build_assertion(
    *,
    issuer: str,
    scope: str,
    audience: str,
    private_key: rsa.RSAPrivateKey,
    issued_at: int,
    lifetime_seconds: int = 3600,
    key_id: str | None = None,
) -> str:
    """Build and sign a JWT assertion.

    Parameters
    ----------
    issuer : str
        Service-account email (``iss`` claim).
    scope : str
        Space-separated OAuth scopes requested for the token.
    audience : str
        Token endpoint URI (``aud`` claim).
    private_key : RSAPrivateKey
        Key the assertion is signed with.
    issued_at : int
        Epoch seconds used for ``iat``; ``exp`` is ``iat + lifetime_seconds``.
    lifetime_seconds : int
        Assertion validity. Google rejects anything above one hour.
    key_id : str or None
        Optional ``kid`` header so the verifier can select the public key.

    Returns
    -------
    str
        The compact-serialized JWT.
    """
    header: dict[str, Any] = {"alg": "RS256", "typ": "JWT"}
    if key_id:
        header["kid"] = key_id
    claims: dict[str, Any] = {
        "iss": issuer,
        "scope": scope,
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + lifetime_seconds,
    }
    signing_input = f"{_json_segment(header)}.{_json_segment(claims)}"
    try:
        signature = private_key.sign(signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    except (ValueError, TypeError) as exc:
        raise AuthError(f"Signing the token assertion failed: {exc}") from exc
    return f"{signing_input}.{b64url(signature)}"
