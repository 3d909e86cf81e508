"""Helpers for safe debug logging.

geodispatch handles service-account private keys, signed assertions, bearer
tokens and push API keys. This module redacts those fields before they reach
DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

REDACTED = "<redacted>"

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "private_key",
        "privatekey",
        "private_key_id",
        "assertion",
        "access_token",
        "accesstoken",
        "id_token",
        "token",
        "authorization",
        "api_key",
        "apikey",
        "key",
        "rest_api_key",
    }
)

_MAX_DEPTH = 20


def is_sensitive_key(key: object) -> bool:
    return str(key).lower() in _SENSITIVE_VALUE_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with credential fields replaced by ``<redacted>``.

    Long strings are cut to *max_string* characters. Objects that are not
    JSON-like are shown by ``repr`` only.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    def _walk(item: Any) -> Any:
        return redact_for_log(item, max_string=max_string, _depth=_depth + 1)

    if isinstance(value, Mapping):
        return {str(k): REDACTED if is_sensitive_key(k) else _walk(v) for k, v in value.items()}
    if isinstance(value, Sequence):
        return [_walk(item) for item in value]
    return repr(value)
