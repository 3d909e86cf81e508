"""Bearer token cache for store authentication."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from geodispatch._crypto.signing import build_assertion, load_private_key
from geodispatch.config import ServiceAccount
from geodispatch.models.token import Credential, TokenGrant

_logger = logging.getLogger(__name__)

#: Refresh tokens this many seconds before they expire.
DEFAULT_REFRESH_MARGIN: float = 300.0


class TokenExchanger(Protocol):
    async def exchange(self, assertion: str) -> TokenGrant: ...


class CredentialManager:
    """Mint, cache and refresh a store bearer token.

    A cached token is served without any I/O while it has more than
    ``refresh_margin`` seconds left. Otherwise one refresh task is started
    and every concurrent caller awaits that same task, so a burst of requests
    after expiry costs a single token exchange.

    Usage::

        manager = CredentialManager(account, OAuthTokenExchanger(transport, account.token_uri))
        token = await manager.get_token()
    """

    def __init__(
        self,
        account: ServiceAccount,
        exchanger: TokenExchanger,
        *,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        assertion_lifetime: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._account = account
        self._exchanger = exchanger
        self._refresh_margin = refresh_margin
        self._assertion_lifetime = assertion_lifetime
        self._clock = clock
        self._credential: Credential | None = None
        self._refresh_task: asyncio.Task[Credential] | None = None

    @property
    def credential(self) -> Credential | None:
        """The cached credential, if any (may be stale)."""
        return self._credential

    async def get_token(self) -> str:
        """Return a bearer token, refreshing it if needed.

        Raises
        ------
        AuthError
            If signing the assertion or the token exchange fails.
        """
        credential = self._credential
        if credential is not None and credential.is_usable(self._clock(), self._refresh_margin):
            return credential.token

        # No await between the check and the assignment, so only one
        # caller can create the task.
        task = self._refresh_task
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh())
            task.add_done_callback(self._on_refresh_done)
            self._refresh_task = task
        else:
            _logger.debug("Joining in-flight token refresh")

        # Shielded so a cancelled caller does not abort the refresh other
        # callers are waiting on.
        credential = await asyncio.shield(task)
        return credential.token

    def invalidate(self) -> None:
        """Drop the cached token (the next call refreshes)."""
        self._credential = None

    def _on_refresh_done(self, task: asyncio.Task[Credential]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            _logger.warning("Token refresh failed: %s", task.exception())

    async def _refresh(self) -> Credential:
        issued_at = int(self._clock())
        assertion = build_assertion(
            issuer=self._account.client_email,
            scope=self._account.scope,
            audience=self._account.token_uri,
            private_key=load_private_key(self._account.private_key),
            issued_at=issued_at,
            lifetime_seconds=self._assertion_lifetime,
            key_id=self._account.private_key_id,
        )
        grant = await self._exchanger.exchange(assertion)
        credential = Credential(token=grant.access_token, expires_at=issued_at + grant.expires_in)
        self._credential = credential
        _logger.info("Store token refreshed, valid for %.0fs", grant.expires_in)
        return credential
