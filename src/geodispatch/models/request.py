"""Inbound request and outbound response models."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class UserLocation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    latitude: float | None = None
    longitude: float | None = None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        # JSON true/false would otherwise coerce to 1.0/0.0.
        if isinstance(value, bool):
            raise ValueError("coordinates must be numbers")
        return value

    @property
    def is_complete(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class NotifyRequest(BaseModel):
    """Body of ``POST /``.

    Every field is optional at this layer; the orchestrator decides which
    combinations are usable so it can tell "missing" from "invalid".
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    service: str | None = None
    user_location: UserLocation | None = None
    geohash: str | None = None
    request_id: str | None = None
    user_name: str | None = None
    location_description: str | None = None

    @property
    def has_location(self) -> bool:
        return bool(self.geohash) or (self.user_location is not None and self.user_location.is_complete)


class ResponseStatus(enum.StrEnum):
    SUCCESS = "success"
    NO_PROVIDERS = "no_providers"
    ERROR = "error"


class NotifyResponse(BaseModel):
    """Result of one request, ready to be rendered as JSON."""

    model_config = ConfigDict(frozen=True)

    http_status: int = 200
    status: ResponseStatus
    notified: int = 0
    message: str | None = None
    error: str | None = None
    details: str | None = None

    @classmethod
    def no_providers(cls) -> NotifyResponse:
        return cls(status=ResponseStatus.NO_PROVIDERS, notified=0)

    @classmethod
    def success(cls, notified: int, message: str | None = None) -> NotifyResponse:
        return cls(status=ResponseStatus.SUCCESS, notified=notified, message=message)

    @classmethod
    def client_error(cls, error: str) -> NotifyResponse:
        return cls(http_status=400, status=ResponseStatus.ERROR, error=error)

    @classmethod
    def server_error(cls, error: str, details: str) -> NotifyResponse:
        return cls(http_status=500, status=ResponseStatus.ERROR, error=error, details=details)

    def body(self) -> dict[str, Any]:
        """JSON body: ``{error[, details]}`` for errors, otherwise the summary."""
        if self.status is ResponseStatus.ERROR:
            out: dict[str, Any] = {"error": self.error or "Internal Server Error"}
            if self.details is not None:
                out["details"] = self.details
            return out
        out = {"status": self.status.value, "notified": self.notified}
        if self.message is not None:
            out["message"] = self.message
        return out
