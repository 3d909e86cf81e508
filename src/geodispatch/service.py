"""High-level async service wiring the dispatch core to its collaborators."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from geodispatch._api.firestore import FirestoreProviderStore
from geodispatch._api.oauth import OAuthTokenExchanger
from geodispatch._api.onesignal import OneSignalGateway
from geodispatch._transport import JsonTransport
from geodispatch.config import DispatchConfig
from geodispatch.credentials import CredentialManager
from geodispatch.dispatcher import NotificationDispatcher
from geodispatch.exceptions import GeoDispatchError
from geodispatch.models.request import NotifyResponse
from geodispatch.orchestrator import RequestOrchestrator
from geodispatch.query import SpatialQueryBuilder

_logger = logging.getLogger(__name__)


class GeoDispatchService:
    """Owns the HTTP connection pool, the token cache and the orchestrator.

    Usage::

        async with GeoDispatchService(config) as service:
            response = await service.handle(payload)

    One instance serves many concurrent requests; the credential cache is
    shared by all of them.
    """

    def __init__(
        self,
        config: DispatchConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._credentials: CredentialManager | None = None
        self._orchestrator: RequestOrchestrator | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GeoDispatchService:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        if self._orchestrator is not None:
            return
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        config = self._config
        transport = JsonTransport(self._http_session)

        if config.service_account is not None:
            self._credentials = CredentialManager(
                config.service_account,
                OAuthTokenExchanger(transport, config.service_account.token_uri, timeout=config.token_timeout),
                refresh_margin=config.token_refresh_margin_seconds,
                assertion_lifetime=config.token_lifetime_seconds,
            )
        else:
            _logger.info("No service account configured, querying the store with its API key")

        store = FirestoreProviderStore(config.store, transport, token_source=self._credentials)
        dispatcher = NotificationDispatcher(OneSignalGateway(config.push, transport))
        self._orchestrator = RequestOrchestrator(
            store,
            dispatcher,
            search=config.search,
            builder=SpatialQueryBuilder(config.schema, config.search),
            template=config.push.template,
            schema=config.schema,
            failure_policy=config.store.failure_policy,
        )

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None
        self._orchestrator = None
        self._credentials = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> DispatchConfig:
        return self._config

    @property
    def credentials(self) -> CredentialManager | None:
        return self._credentials

    def _require_orchestrator(self) -> RequestOrchestrator:
        if self._orchestrator is None:
            raise GeoDispatchError("Service not started. Use 'async with GeoDispatchService(...) as service:'")
        return self._orchestrator

    async def handle(self, payload: Any) -> NotifyResponse:
        """Process one decoded request body."""
        return await self._require_orchestrator().handle(payload)
