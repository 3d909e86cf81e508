"""geodispatch - Async nearby-provider matching and push fan-out."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("geodispatch")
except PackageNotFoundError:
    __version__ = "0+local"
from geodispatch.config import (
    DispatchConfig,
    MessageTemplate,
    ProviderSchema,
    PushConfig,
    SearchConfig,
    ServerConfig,
    ServiceAccount,
    StoreConfig,
    StoreFailurePolicy,
)
from geodispatch.credentials import CredentialManager
from geodispatch.dispatcher import NotificationDispatcher, extract_recipients
from geodispatch.exceptions import (
    AuthError,
    ConfigError,
    DispatchError,
    GeoDispatchError,
    StoreQueryError,
    TransportError,
    ValidationError,
)
from geodispatch.geohash import BoundingRect, GeoPoint, decode, encode
from geodispatch.models import (
    Credential,
    DispatchResult,
    NotificationBatch,
    NotifyRequest,
    NotifyResponse,
    ProviderRecord,
    ResponseStatus,
)
from geodispatch.neighbors import NeighborhoodExpander, expand
from geodispatch.orchestrator import RequestOrchestrator, RequestState
from geodispatch.query import Operator, Predicate, SpatialQuery, SpatialQueryBuilder
from geodispatch.service import GeoDispatchService

__all__ = [
    "__version__",
    "AuthError",
    "BoundingRect",
    "ConfigError",
    "Credential",
    "CredentialManager",
    "DispatchConfig",
    "DispatchError",
    "DispatchResult",
    "GeoDispatchError",
    "GeoDispatchService",
    "GeoPoint",
    "MessageTemplate",
    "NeighborhoodExpander",
    "NotificationBatch",
    "NotificationDispatcher",
    "NotifyRequest",
    "NotifyResponse",
    "Operator",
    "Predicate",
    "ProviderRecord",
    "ProviderSchema",
    "PushConfig",
    "RequestOrchestrator",
    "RequestState",
    "ResponseStatus",
    "SearchConfig",
    "ServerConfig",
    "ServiceAccount",
    "SpatialQuery",
    "SpatialQueryBuilder",
    "StoreConfig",
    "StoreFailurePolicy",
    "StoreQueryError",
    "TransportError",
    "ValidationError",
    "decode",
    "encode",
    "expand",
    "extract_recipients",
]
