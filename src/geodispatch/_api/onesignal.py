"""OneSignal create-notification endpoint.

Endpoint:
  - POST /api/v1/notifications
"""

from __future__ import annotations

import logging
from typing import Any

from geodispatch._redact import redact_for_log
from geodispatch._transport import Transport
from geodispatch.config import PushConfig
from geodispatch.exceptions import DispatchError, TransportError
from geodispatch.models.notification import NotificationBatch

_logger = logging.getLogger(__name__)


def build_notification_payload(config: PushConfig, batch: NotificationBatch) -> dict[str, Any]:
    """Build the JSON body for one notification."""
    return {
        "app_id": config.app_id,
        config.recipient_target: list(batch.recipient_ids),
        "headings": {config.language: batch.title},
        "contents": {config.language: batch.body},
        "data": dict(batch.metadata),
    }


class OneSignalGateway:
    """Send a notification batch through OneSignal in a single call."""

    def __init__(self, config: PushConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def send(self, batch: NotificationBatch) -> None:
        """Send *batch*.

        Raises
        ------
        DispatchError
            If the call fails, times out, or OneSignal reports errors without
            creating a notification.
        """
        payload = build_notification_payload(self._config, batch)
        _logger.info("Sending push to %d recipient(s)", len(batch.recipient_ids))
        _logger.debug("OneSignal payload=%s", redact_for_log(payload))

        try:
            reply = await self._transport.post(
                self._config.api_url,
                json_body=payload,
                headers={"authorization": f"Basic {self._config.rest_api_key}"},
                timeout=self._config.timeout,
            )
        except TransportError as exc:
            raise DispatchError(f"Push gateway call failed: {exc}") from exc

        if isinstance(reply, dict) and reply.get("errors") and not reply.get("id"):
            raise DispatchError(f"Push gateway rejected notification: {reply['errors']}")
        _logger.debug("OneSignal reply=%s", redact_for_log(reply))
