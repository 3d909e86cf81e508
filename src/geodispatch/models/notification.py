"""Notification batch and dispatch result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Upper bound on a plausible push recipient identifier.
MAX_RECIPIENT_ID_LENGTH = 128


def is_plausible_recipient(value: Any) -> bool:
    """Whether *value* looks like a push recipient identifier."""
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped or len(stripped) > MAX_RECIPIENT_ID_LENGTH:
        return False
    return not any(char.isspace() for char in stripped)


class NotificationBatch(BaseModel):
    """One logical notification fanned out to many recipients.

    ``recipient_ids`` is normalized on construction: implausible values are
    dropped and duplicates removed (first occurrence wins), so a batch is
    always safe to hand to the gateway as-is.
    """

    model_config = ConfigDict(frozen=True)

    recipient_ids: tuple[str, ...] = ()
    title: str = ""
    body: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipient_ids", mode="before")
    @classmethod
    def _dedupe_recipients(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = (value,)
        unique: dict[str, None] = {}
        for item in value:
            if is_plausible_recipient(item):
                unique.setdefault(item.strip(), None)
        return tuple(unique)

    @property
    def is_empty(self) -> bool:
        return not self.recipient_ids

    def __len__(self) -> int:
        return len(self.recipient_ids)


class DispatchResult(BaseModel):
    """Outcome of one dispatch.

    ``attempted`` is the number of recipients handed to the gateway
    (0 for an empty batch, which counts as a success).
    """

    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    succeeded: bool = True
    error: str | None = None
