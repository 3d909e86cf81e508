"""Structured log output for the service entry point."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from geodispatch._redact import redact_for_log


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ``level``, ``message``, ``logger``, ``timestamp``.

    A ``data`` mapping passed through ``extra={"data": ...}`` is redacted and
    included as-is.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
        }
        data = getattr(record, "data", None)
        if data is not None:
            entry["data"] = redact_for_log(data)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str | int = "INFO", *, json_output: bool = True) -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper() if isinstance(level, str) else level)
