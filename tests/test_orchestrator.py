"""End-to-end tests for the request pipeline with fake collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from geodispatch import geohash
from geodispatch._api.firestore import parse_run_query_response
from geodispatch.config import MessageTemplate, ProviderSchema, SearchConfig, StoreFailurePolicy
from geodispatch.dispatcher import NotificationDispatcher
from geodispatch.exceptions import AuthError, DispatchError, StoreQueryError
from geodispatch.models.notification import NotificationBatch
from geodispatch.models.provider import ProviderRecord
from geodispatch.models.request import ResponseStatus
from geodispatch.orchestrator import RequestContext, RequestOrchestrator, RequestState
from geodispatch.query import Operator, SpatialQuery

_SF = {"latitude": 37.7749, "longitude": -122.4194}


@dataclass
class FakeStore:
    records: list[ProviderRecord] = field(default_factory=list)
    error: Exception | None = None
    queries: list[SpatialQuery] = field(default_factory=list)

    async def run_query(self, query: SpatialQuery) -> list[ProviderRecord]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.records)


@dataclass
class FakeGateway:
    fail: bool = False
    batches: list[NotificationBatch] = field(default_factory=list)

    async def send(self, batch: NotificationBatch) -> None:
        self.batches.append(batch)
        if self.fail:
            raise DispatchError("gateway down")


def _provider(recipient: Any) -> ProviderRecord:
    return ProviderRecord(data={"oneSignalSubscriptionId": recipient, "services": ["tow"]})


def _make(
    store: FakeStore | None = None,
    gateway: FakeGateway | None = None,
    **kwargs: Any,
) -> tuple[RequestOrchestrator, FakeStore, FakeGateway]:
    store = store or FakeStore()
    gateway = gateway or FakeGateway()
    return RequestOrchestrator(store, NotificationDispatcher(gateway), **kwargs), store, gateway


@pytest.mark.asyncio
async def test_no_matching_providers() -> None:
    orchestrator, store, gateway = _make()

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 200
    assert response.body() == {"status": "no_providers", "notified": 0}
    assert len(store.queries) == 1
    assert gateway.batches == []


@pytest.mark.asyncio
async def test_success_counts_unique_valid_recipients() -> None:
    store = FakeStore(records=[_provider("player-1"), _provider("player-2"), _provider(None)])
    orchestrator, _, gateway = _make(store)

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF, "requestId": "req-9", "userName": "Ana"})

    assert response.http_status == 200
    assert response.body() == {"status": "success", "notified": 2}
    assert len(gateway.batches) == 1
    batch = gateway.batches[0]
    assert batch.recipient_ids == ("player-1", "player-2")
    assert batch.title == "New tow request nearby"
    assert batch.body == "Ana needs help"
    assert batch.metadata == {"requestId": "req-9", "service": "tow"}


@pytest.mark.asyncio
async def test_duplicate_provider_recipients_notified_once() -> None:
    store = FakeStore(records=[_provider("a"), _provider("a"), _provider("b")])
    orchestrator, _, gateway = _make(store)

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.notified == 2
    assert gateway.batches[0].recipient_ids == ("a", "b")


@pytest.mark.asyncio
async def test_missing_latitude_is_client_error() -> None:
    orchestrator, store, _ = _make()

    response = await orchestrator.handle({"service": "tow", "userLocation": {"longitude": -122.4194}})

    assert response.http_status == 400
    assert response.body() == {"error": "Missing required fields"}
    assert store.queries == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"userLocation": _SF},
        {"service": "", "userLocation": _SF},
        {"service": "tow"},
        {"service": "tow", "userLocation": {}},
    ],
)
async def test_missing_required_fields(payload: dict[str, Any]) -> None:
    orchestrator, _, _ = _make()
    response = await orchestrator.handle(payload)
    assert response.http_status == 400
    assert response.body() == {"error": "Missing required fields"}


@pytest.mark.asyncio
async def test_out_of_range_coordinates_rejected() -> None:
    orchestrator, store, _ = _make()
    ctx = RequestContext()

    response = await orchestrator.handle(
        {"service": "tow", "userLocation": {"latitude": 123.0, "longitude": 0.0}}, context=ctx
    )

    assert response.http_status == 400
    assert response.body() == {"error": "Invalid location"}
    assert ctx.history == [RequestState.VALIDATING, RequestState.GEOCODING, RequestState.FAILED]
    assert store.queries == []


@pytest.mark.asyncio
async def test_zero_coordinates_are_valid() -> None:
    orchestrator, store, _ = _make()
    response = await orchestrator.handle({"service": "tow", "userLocation": {"latitude": 0, "longitude": 0}})
    assert response.status is ResponseStatus.NO_PROVIDERS
    assert len(store.queries) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [[1, 2], "tow", None, {"service": "tow", "userLocation": "here"}])
async def test_malformed_body_rejected(payload: Any) -> None:
    orchestrator, _, _ = _make()
    response = await orchestrator.handle(payload)
    assert response.http_status == 400
    assert response.body() == {"error": "Invalid request body"}


@pytest.mark.asyncio
async def test_precomputed_geohash_is_authoritative() -> None:
    orchestrator, store, _ = _make()
    ctx = RequestContext()

    # The geohash names a cell far away from userLocation; it must win.
    await orchestrator.handle({"service": "tow", "geohash": "U4PRUY", "userLocation": _SF}, context=ctx)

    assert ctx.center_key == "u4pruy"
    assert RequestState.GEOCODING not in ctx.history
    in_predicate = store.queries[0].predicate_for("geohash")
    assert in_predicate is not None
    assert in_predicate.value[0] == "u4pruy"


@pytest.mark.asyncio
async def test_precomputed_geohash_without_coordinates() -> None:
    orchestrator, store, _ = _make()
    response = await orchestrator.handle({"service": "tow", "geohash": "9q8yyk"})
    assert response.status is ResponseStatus.NO_PROVIDERS
    assert len(store.queries) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["9q8yya", "9" * 13, "9" * 200_000])
async def test_malformed_precomputed_geohash_rejected(key: str) -> None:
    orchestrator, store, _ = _make()
    response = await orchestrator.handle({"service": "tow", "geohash": key})
    assert response.http_status == 400
    assert response.body() == {"error": "Invalid location"}
    assert store.queries == []


@pytest.mark.asyncio
async def test_geohash_length_cap_is_configurable() -> None:
    orchestrator, store, _ = _make(search=SearchConfig(max_precision=8))
    assert (await orchestrator.handle({"service": "tow", "geohash": "9q8yykvx"})).http_status == 200
    assert (await orchestrator.handle({"service": "tow", "geohash": "9q8yykvxb"})).http_status == 400
    assert len(store.queries) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("location", [{"latitude": True, "longitude": False}, {"latitude": 37.7, "longitude": True}])
async def test_boolean_coordinates_rejected(location: dict[str, Any]) -> None:
    orchestrator, store, _ = _make()
    response = await orchestrator.handle({"service": "tow", "userLocation": location})
    assert response.body() == {"error": "Invalid request body"}
    assert store.queries == []


@pytest.mark.asyncio
async def test_query_covers_neighborhood_within_limit() -> None:
    orchestrator, store, _ = _make(search=SearchConfig(precision=6, in_predicate_limit=4))

    await orchestrator.handle({"service": "tow", "userLocation": _SF})

    query = store.queries[0]
    in_predicate = query.predicate_for("geohash")
    assert in_predicate is not None
    assert in_predicate.operator is Operator.IN
    assert len(in_predicate.value) == 4
    assert in_predicate.value[0] == geohash.encode(_SF["latitude"], _SF["longitude"], 6)
    assert query.predicate_for("services").value == "tow"
    assert query.predicate_for("acceptingRequests").value is True


@pytest.mark.asyncio
async def test_full_state_history_on_success() -> None:
    orchestrator, _, _ = _make(FakeStore(records=[_provider("p")]))
    ctx = RequestContext()

    await orchestrator.handle({"service": "tow", "userLocation": _SF}, context=ctx)

    assert ctx.history == [
        RequestState.VALIDATING,
        RequestState.GEOCODING,
        RequestState.EXPANDING,
        RequestState.QUERYING,
        RequestState.EXTRACTING,
        RequestState.DISPATCHING,
        RequestState.RESPONDING,
    ]


@pytest.mark.asyncio
async def test_store_failure_fails_open_by_default() -> None:
    orchestrator, _, gateway = _make(FakeStore(error=StoreQueryError("HTTP 503")))

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 200
    assert response.body() == {"status": "no_providers", "notified": 0}
    assert gateway.batches == []


@dataclass
class MalformedReplyStore:
    reply: list[dict[str, Any]]

    async def run_query(self, query: SpatialQuery) -> list[ProviderRecord]:
        return parse_run_query_response(self.reply)


@pytest.mark.asyncio
async def test_undecodable_store_reply_fails_open() -> None:
    store = MalformedReplyStore(
        reply=[{"document": {"name": "providers/p1", "fields": {"rating": {"integerValue": "abc"}}}}]
    )
    gateway = FakeGateway()
    orchestrator = RequestOrchestrator(store, NotificationDispatcher(gateway))

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 200
    assert response.body() == {"status": "no_providers", "notified": 0}
    assert gateway.batches == []


@pytest.mark.asyncio
async def test_store_failure_fail_closed_surfaces() -> None:
    orchestrator, _, _ = _make(
        FakeStore(error=StoreQueryError("HTTP 503")),
        failure_policy=StoreFailurePolicy.FAIL_CLOSED,
    )

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 500
    body = response.body()
    assert body["error"] == "Internal Server Error"
    assert "HTTP 503" in body["details"]


@pytest.mark.asyncio
async def test_auth_failure_is_server_error() -> None:
    orchestrator, _, _ = _make(FakeStore(error=AuthError("invalid_grant")))

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 500
    assert response.status is ResponseStatus.ERROR
    assert "invalid_grant" in response.body()["details"]


@pytest.mark.asyncio
async def test_unexpected_exception_is_server_error() -> None:
    orchestrator, _, _ = _make(FakeStore(error=RuntimeError("boom")))
    ctx = RequestContext()

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF}, context=ctx)

    assert response.http_status == 500
    assert response.body() == {"error": "Internal Server Error", "details": "boom"}
    assert ctx.state is RequestState.FAILED


@pytest.mark.asyncio
async def test_push_failure_keeps_success_status_with_message() -> None:
    orchestrator, _, gateway = _make(FakeStore(records=[_provider("p1")]), FakeGateway(fail=True))

    response = await orchestrator.handle({"service": "tow", "userLocation": _SF})

    assert response.http_status == 200
    assert response.body() == {
        "status": "success",
        "notified": 1,
        "message": "Providers matched but push delivery failed",
    }
    assert len(gateway.batches) == 1


@pytest.mark.asyncio
async def test_custom_recipient_field_and_template() -> None:
    store = FakeStore(records=[ProviderRecord(data={"oneSignalPlayerId": "legacy-1"})])
    orchestrator, _, gateway = _make(
        store,
        schema=ProviderSchema(recipient_field="oneSignalPlayerId"),
        template=MessageTemplate(title="{service}!", body="Help {user_name}", default_user_name="a driver"),
    )

    response = await orchestrator.handle(
        {"service": "jump", "userLocation": _SF, "locationDescription": "Pier 39"}
    )

    assert response.notified == 1
    batch = gateway.batches[0]
    assert batch.title == "jump!"
    assert batch.body == "Help a driver at Pier 39"
    assert batch.metadata == {"service": "jump", "locationDescription": "Pier 39"}
