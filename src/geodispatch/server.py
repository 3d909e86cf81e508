"""aiohttp web front end: one POST endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from aiohttp import web

from geodispatch.config import DispatchConfig
from geodispatch.models.request import NotifyResponse
from geodispatch.service import GeoDispatchService

_logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[NotifyResponse]]

HANDLER_KEY: web.AppKey[Handler] = web.AppKey("geodispatch_handler")
SERVICE_KEY: web.AppKey[GeoDispatchService] = web.AppKey("geodispatch_service", GeoDispatchService)


async def notify_view(request: web.Request) -> web.Response:
    if request.method != "POST":
        return web.json_response({"error": "Method Not Allowed"}, status=405, headers={"Allow": "POST"})

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return web.json_response({"error": "Invalid JSON body"}, status=400)

    response = await request.app[HANDLER_KEY](payload)
    return web.json_response(response.body(), status=response.http_status)


def create_app(handler: Handler, *, path: str = "/") -> web.Application:
    """Build the web application around *handler* (usually ``service.handle``)."""
    app = web.Application()
    app[HANDLER_KEY] = handler
    app.router.add_route("*", path, notify_view)
    return app


def create_service_app(config: DispatchConfig) -> web.Application:
    """Build an application that owns a :class:`GeoDispatchService` for its lifetime."""
    service = GeoDispatchService(config)
    app = create_app(service.handle, path=config.server.path)
    app[SERVICE_KEY] = service

    async def _service_ctx(_app: web.Application) -> AsyncIterator[None]:
        async with service:
            _logger.info("geodispatch service started")
            yield
        _logger.info("geodispatch service stopped")

    app.cleanup_ctx.append(_service_ctx)
    return app


def run(config: DispatchConfig) -> None:
    """Serve until interrupted."""
    web.run_app(
        create_service_app(config),
        host=config.server.host,
        port=config.server.port,
        print=None,
    )
