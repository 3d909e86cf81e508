"""Request orchestration: location -> neighborhood -> providers -> push."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from geodispatch import geohash
from geodispatch._constants import INVALID_BODY_MESSAGE, INVALID_LOCATION_MESSAGE, MISSING_FIELDS_MESSAGE
from geodispatch._redact import redact_for_log
from geodispatch.config import MessageTemplate, ProviderSchema, SearchConfig, StoreFailurePolicy
from geodispatch.dispatcher import NotificationDispatcher, extract_recipients
from geodispatch.exceptions import AuthError, StoreQueryError, ValidationError
from geodispatch.models.notification import DispatchResult, NotificationBatch
from geodispatch.models.provider import ProviderRecord
from geodispatch.models.request import NotifyRequest, NotifyResponse
from geodispatch.neighbors import NeighborhoodExpander
from geodispatch.query import SpatialQuery, SpatialQueryBuilder

_logger = logging.getLogger(__name__)

PUSH_FAILED_MESSAGE = "Providers matched but push delivery failed"


class ProviderStore(Protocol):
    async def run_query(self, query: SpatialQuery) -> list[ProviderRecord]: ...


class RequestState(enum.Enum):
    VALIDATING = "validating"
    GEOCODING = "geocoding"
    EXPANDING = "expanding"
    QUERYING = "querying"
    EXTRACTING = "extracting"
    DISPATCHING = "dispatching"
    RESPONDING = "responding"
    FAILED = "failed"


#: Where a failed provider query leads, per policy.
STORE_FAILURE_TRANSITIONS: dict[StoreFailurePolicy, RequestState] = {
    StoreFailurePolicy.FAIL_OPEN: RequestState.EXTRACTING,
    StoreFailurePolicy.FAIL_CLOSED: RequestState.FAILED,
}


@dataclass
class RequestContext:
    """Per-request working state, kept for logging and tests."""

    state: RequestState = RequestState.VALIDATING
    history: list[RequestState] = field(default_factory=lambda: [RequestState.VALIDATING])
    request: NotifyRequest | None = None
    center_key: str | None = None
    keys: tuple[str, ...] = ()
    query: SpatialQuery | None = None
    records: list[ProviderRecord] = field(default_factory=list)
    batch: NotificationBatch | None = None
    dispatch: DispatchResult | None = None

    @property
    def request_id(self) -> str:
        if self.request is not None and self.request.request_id:
            return self.request.request_id
        return "-"


class RequestOrchestrator:
    """Run one notify request through the dispatch pipeline.

    Only validation problems and unexpected exceptions turn into non-200
    responses. A failed provider query follows the configured
    :class:`StoreFailurePolicy`; a failed push is reported in the response
    message but keeps the ``success`` status.
    """

    def __init__(
        self,
        store: ProviderStore,
        dispatcher: NotificationDispatcher,
        *,
        search: SearchConfig | None = None,
        schema: ProviderSchema | None = None,
        builder: SpatialQueryBuilder | None = None,
        template: MessageTemplate | None = None,
        failure_policy: StoreFailurePolicy = StoreFailurePolicy.FAIL_OPEN,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._search = search or SearchConfig()
        self._schema = schema or ProviderSchema()
        self._expander = NeighborhoodExpander(self._search)
        self._builder = builder or SpatialQueryBuilder(self._schema, self._search)
        self._template = template or MessageTemplate()
        self._failure_policy = failure_policy

    async def handle(self, payload: Any, *, context: RequestContext | None = None) -> NotifyResponse:
        """Process a decoded JSON body and return the response to send."""
        ctx = context or RequestContext()
        try:
            response = await self._run(ctx, payload)
        except ValidationError as exc:
            self._transition(ctx, RequestState.FAILED)
            _logger.warning("Rejected request %s: %s", ctx.request_id, exc)
            return NotifyResponse.client_error(str(exc))
        except AuthError as exc:
            self._transition(ctx, RequestState.FAILED)
            _logger.error("Store authentication failed for request %s: %s", ctx.request_id, exc)
            return NotifyResponse.server_error("Internal Server Error", str(exc))
        except StoreQueryError as exc:
            self._transition(ctx, RequestState.FAILED)
            _logger.error("Provider query failed for request %s: %s", ctx.request_id, exc)
            return NotifyResponse.server_error("Internal Server Error", str(exc))
        except Exception as exc:
            self._transition(ctx, RequestState.FAILED)
            _logger.exception("Unhandled error for request %s", ctx.request_id)
            return NotifyResponse.server_error("Internal Server Error", str(exc))
        self._transition(ctx, RequestState.RESPONDING)
        return response

    def _transition(self, ctx: RequestContext, state: RequestState) -> None:
        _logger.debug("Request %s: %s -> %s", ctx.request_id, ctx.state.value, state.value)
        ctx.state = state
        ctx.history.append(state)

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _run(self, ctx: RequestContext, payload: Any) -> NotifyResponse:
        request = self._validate(ctx, payload)
        location = request.user_location

        if request.geohash:
            ctx.center_key = request.geohash.lower()
        elif location is not None and location.latitude is not None and location.longitude is not None:
            self._transition(ctx, RequestState.GEOCODING)
            ctx.center_key = self._geocode(location.latitude, location.longitude)
        else:
            raise ValidationError(MISSING_FIELDS_MESSAGE)

        self._transition(ctx, RequestState.EXPANDING)
        ctx.keys = self._expander.expand(ctx.center_key)

        self._transition(ctx, RequestState.QUERYING)
        ctx.query = self._builder.build(ctx.keys, request.service or "")
        ctx.records = await self._query(ctx, ctx.query)

        self._transition(ctx, RequestState.EXTRACTING)
        recipients = extract_recipients(ctx.records, self._schema.recipient_field)
        ctx.batch = self._build_batch(request, recipients)

        self._transition(ctx, RequestState.DISPATCHING)
        ctx.dispatch = await self._dispatcher.dispatch(ctx.batch)

        if ctx.batch.is_empty:
            _logger.warning("No nearby providers for request %s (keys=%s)", ctx.request_id, list(ctx.keys))
            return NotifyResponse.no_providers()
        if not ctx.dispatch.succeeded:
            return NotifyResponse.success(ctx.dispatch.attempted, message=PUSH_FAILED_MESSAGE)
        _logger.info("Notified %d provider(s) for request %s", ctx.dispatch.attempted, ctx.request_id)
        return NotifyResponse.success(ctx.dispatch.attempted)

    def _validate(self, ctx: RequestContext, payload: Any) -> NotifyRequest:
        _logger.info("Incoming request %s", redact_for_log(payload))
        if not isinstance(payload, dict):
            raise ValidationError(INVALID_BODY_MESSAGE)
        try:
            request = NotifyRequest.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(INVALID_BODY_MESSAGE) from exc
        ctx.request = request

        if not request.service or not request.has_location:
            raise ValidationError(MISSING_FIELDS_MESSAGE)
        if request.geohash and (
            len(request.geohash) > self._search.max_precision or not geohash.is_valid(request.geohash)
        ):
            raise ValidationError(INVALID_LOCATION_MESSAGE)
        return request

    def _geocode(self, latitude: float, longitude: float) -> str:
        try:
            return geohash.encode(latitude, longitude, self._search.precision)
        except ValidationError as exc:
            _logger.debug("Geocoding failed: %s", exc)
            raise ValidationError(INVALID_LOCATION_MESSAGE) from exc

    async def _query(self, ctx: RequestContext, query: SpatialQuery) -> list[ProviderRecord]:
        try:
            return await self._store.run_query(query)
        except StoreQueryError as exc:
            next_state = STORE_FAILURE_TRANSITIONS[self._failure_policy]
            if next_state is RequestState.FAILED:
                raise
            _logger.error("Provider query failed for request %s, treating as no providers: %s", ctx.request_id, exc)
            return []

    def _build_batch(self, request: NotifyRequest, recipients: Sequence[str]) -> NotificationBatch:
        service = request.service or ""
        title, body = self._template.render(service, request.user_name, request.location_description)
        metadata = {
            "requestId": request.request_id,
            "service": service,
            "locationDescription": request.location_description,
        }
        return NotificationBatch(
            recipient_ids=tuple(recipients),
            title=title,
            body=body,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )
