"""Pydantic models for geodispatch."""

from geodispatch.models.notification import DispatchResult, NotificationBatch, is_plausible_recipient
from geodispatch.models.provider import ProviderRecord
from geodispatch.models.request import NotifyRequest, NotifyResponse, ResponseStatus, UserLocation
from geodispatch.models.token import Credential, TokenGrant

__all__ = [
    "Credential",
    "DispatchResult",
    "NotificationBatch",
    "NotifyRequest",
    "NotifyResponse",
    "ProviderRecord",
    "ResponseStatus",
    "TokenGrant",
    "UserLocation",
    "is_plausible_recipient",
]
