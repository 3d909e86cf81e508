"""Deduplicating push fan-out."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from geodispatch.exceptions import DispatchError
from geodispatch.models.notification import DispatchResult, NotificationBatch, is_plausible_recipient
from geodispatch.models.provider import ProviderRecord

_logger = logging.getLogger(__name__)


class PushGateway(Protocol):
    async def send(self, batch: NotificationBatch) -> None: ...


def extract_recipients(records: Iterable[ProviderRecord], field: str) -> list[str]:
    """Pull plausible recipient identifiers out of provider documents.

    Documents whose field is missing, null, not a string or blank are
    skipped. Duplicates are kept here; :class:`NotificationBatch` removes them.
    """
    recipients: list[str] = []
    for record in records:
        value = record.get(field)
        if is_plausible_recipient(value):
            recipients.append(value.strip())
    return recipients


class NotificationDispatcher:
    """Hand a batch to the push gateway without letting failures escape.

    A gateway failure is logged and reported through
    :attr:`DispatchResult.succeeded`; the caller's request still completes.
    A failed batch is never resent, since retries belong to the gateway.
    """

    def __init__(self, gateway: PushGateway) -> None:
        self._gateway = gateway

    async def dispatch(self, batch: NotificationBatch) -> DispatchResult:
        if batch.is_empty:
            _logger.debug("Empty batch, nothing to dispatch")
            return DispatchResult(attempted=0, succeeded=True)

        attempted = len(batch.recipient_ids)
        try:
            await self._gateway.send(batch)
        except DispatchError as exc:
            _logger.error("Push dispatch to %d recipient(s) failed: %s", attempted, exc)
            return DispatchResult(attempted=attempted, succeeded=False, error=str(exc))
        return DispatchResult(attempted=attempted, succeeded=True)

    async def notify(
        self,
        recipient_ids: Iterable[Any],
        title: str,
        body: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> DispatchResult:
        """Deduplicate *recipient_ids* into a batch and dispatch it."""
        batch = NotificationBatch(
            recipient_ids=tuple(recipient_ids),
            title=title,
            body=body,
            metadata=dict(metadata or {}),
        )
        return await self.dispatch(batch)
