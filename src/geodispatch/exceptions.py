"""Custom exception hierarchy for geodispatch."""

from __future__ import annotations


class GeoDispatchError(Exception):
    """Base exception for all geodispatch errors."""


class ConfigError(GeoDispatchError):
    """Invalid or missing configuration."""


class ValidationError(GeoDispatchError):
    """Bad or missing caller input (client's fault, HTTP 400)."""


class TransportError(GeoDispatchError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AuthError(GeoDispatchError):
    """Signing the assertion or exchanging it for a bearer token failed.

    No store query can proceed without a token, so this always surfaces
    as a server error.
    """


class StoreQueryError(GeoDispatchError):
    """The document-store query failed or timed out.

    The orchestrator recovers from this according to the configured
    store failure policy.
    """


class DispatchError(GeoDispatchError):
    """The push gateway rejected the notification or could not be reached."""
