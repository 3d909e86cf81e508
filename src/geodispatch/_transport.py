"""HTTP transport shared by the store, token and push clients."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from geodispatch._constants import USER_AGENT
from geodispatch._redact import redact_for_log
from geodispatch.exceptions import TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the collaborator clients.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`JsonTransport`) concrete.
    """

    async def post(
        self,
        url: str,
        *,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float,
    ) -> Any:
        ...


class JsonTransport:
    """POST JSON or form bodies and decode JSON replies over a shared session."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def post(
        self,
        url: str,
        *,
        json_body: Any = None,
        form: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        timeout: float,
    ) -> Any:
        """Send a POST and return the decoded JSON reply.

        Exactly one of *json_body* or *form* is sent. Every failure mode
        (connection error, timeout, non-2xx status, non-JSON body) raises
        :class:`TransportError` so callers map a single exception type.
        """
        request_headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if headers:
            request_headers.update(headers)

        if form is not None:
            body: Any = aiohttp.FormData(dict(form))
        else:
            body = json.dumps(json_body, separators=(",", ":"))
            request_headers["content-type"] = "application/json; charset=UTF-8"

        _logger.debug("POST %s headers=%s", url, redact_for_log(request_headers))

        try:
            async with self._http.post(
                url,
                data=body,
                headers=request_headers,
                params=dict(params) if params else None,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise TransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=url,
                    )
        except TransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Request to {url} timed out after {timeout}s", endpoint=url) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {url} failed: {exc}", endpoint=url) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                status_code=resp.status,
                endpoint=url,
            ) from exc
