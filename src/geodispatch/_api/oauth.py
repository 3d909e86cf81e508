"""OAuth 2.0 token endpoint (JWT-bearer grant).

Endpoint:
  - POST <token_uri>  grant_type=urn:ietf:params:oauth:grant-type:jwt-bearer
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from geodispatch._constants import JWT_BEARER_GRANT
from geodispatch._redact import redact_for_log
from geodispatch._transport import Transport
from geodispatch.exceptions import AuthError, TransportError
from geodispatch.models.token import TokenGrant

_logger = logging.getLogger(__name__)


class OAuthTokenExchanger:
    """Exchange a signed assertion for a bearer token."""

    def __init__(self, transport: Transport, token_uri: str, *, timeout: float = 10.0) -> None:
        self._transport = transport
        self._token_uri = token_uri
        self._timeout = timeout

    async def exchange(self, assertion: str) -> TokenGrant:
        """POST the assertion and parse the grant.

        Raises
        ------
        AuthError
            If the endpoint fails, times out or returns no usable token.
        """
        try:
            reply = await self._transport.post(
                self._token_uri,
                form={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self._timeout,
            )
        except TransportError as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc

        _logger.debug("Token endpoint reply %s", redact_for_log(reply))
        if not isinstance(reply, dict):
            raise AuthError("Token endpoint returned a non-object reply")
        try:
            return TokenGrant.model_validate(reply)
        except PydanticValidationError as exc:
            raise AuthError(f"Token endpoint reply is missing access_token/expires_in: {exc}") from exc
