"""Cryptographic primitives for store authentication."""

from __future__ import annotations

from geodispatch._crypto.signing import b64url, build_assertion, load_private_key

__all__ = [
    "b64url",
    "build_assertion",
    "load_private_key",
]
