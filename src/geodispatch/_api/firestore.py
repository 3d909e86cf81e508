"""Firestore REST query endpoint.

Endpoint:
  - POST /v1/projects/{project}/databases/{database}/documents:runQuery
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from geodispatch._redact import redact_for_log
from geodispatch._transport import Transport
from geodispatch.config import StoreConfig
from geodispatch.exceptions import StoreQueryError, TransportError
from geodispatch.models.provider import ProviderRecord
from geodispatch.query import SpatialQuery, decode_fields

_logger = logging.getLogger(__name__)


class TokenSource(Protocol):
    async def get_token(self) -> str: ...


def parse_run_query_response(reply: Any) -> list[ProviderRecord]:
    """Turn a ``runQuery`` reply into provider records.

    The reply is a JSON array with one element per result; elements without
    a ``document`` only carry progress metadata (``readTime``,
    ``skippedResults``) and are skipped.

    Raises
    ------
    StoreQueryError
        If the reply is not an array, contains an ``error`` element, or
        carries a typed value that cannot be decoded.
    """
    if reply is None:
        return []
    if not isinstance(reply, list):
        raise StoreQueryError(f"runQuery returned {type(reply).__name__}, expected a list")

    records: list[ProviderRecord] = []
    for item in reply:
        if not isinstance(item, dict):
            continue
        error = item.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise StoreQueryError(f"runQuery failed: {message}")
        document = item.get("document")
        if not isinstance(document, dict):
            continue
        fields = document.get("fields")
        if not isinstance(fields, dict):
            continue
        name = str(document.get("name", ""))
        try:
            data = decode_fields(fields)
        except (ValueError, TypeError, AttributeError) as exc:
            raise StoreQueryError(f"runQuery returned a malformed value in {name!r}: {exc}") from exc
        records.append(ProviderRecord(name=name, data=data))
    return records


class FirestoreProviderStore:
    """Run provider queries against the Firestore REST API.

    Requests carry a bearer token from *token_source* when one is given;
    otherwise the project API key is sent as the ``key`` query parameter.
    """

    def __init__(
        self,
        config: StoreConfig,
        transport: Transport,
        *,
        token_source: TokenSource | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._token_source = token_source

    async def run_query(self, query: SpatialQuery) -> list[ProviderRecord]:
        """Execute *query* and return the matching provider documents.

        Raises
        ------
        StoreQueryError
            On any HTTP, timeout or payload failure.
        AuthError
            If no bearer token could be obtained (propagated unchanged).
        """
        headers: dict[str, str] = {}
        params: dict[str, str] = {}
        if self._token_source is not None:
            token = await self._token_source.get_token()
            headers["authorization"] = f"Bearer {token}"
        elif self._config.api_key:
            params["key"] = self._config.api_key

        body = query.to_structured_query()
        _logger.info("Querying %s", query.collection)
        _logger.debug("runQuery body=%s", redact_for_log(body))

        try:
            reply = await self._transport.post(
                self._config.run_query_url,
                json_body=body,
                headers=headers,
                params=params,
                timeout=self._config.timeout,
            )
        except TransportError as exc:
            raise StoreQueryError(f"Provider query failed: {exc}") from exc

        records = parse_run_query_response(reply)
        _logger.debug("runQuery returned %d document(s)", len(records))
        return records
