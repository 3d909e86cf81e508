"""Full-stack tests: the service talks HTTP to a fake store, token endpoint and push API."""

from __future__ import annotations

from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from geodispatch.config import DispatchConfig, PushConfig, ServiceAccount, StoreConfig, StoreFailurePolicy
from geodispatch.exceptions import GeoDispatchError
from geodispatch.server import create_service_app
from geodispatch.service import GeoDispatchService

_SF = {"latitude": 37.7749, "longitude": -122.4194}


class _Upstream:
    """Records every call and answers like the real collaborators."""

    def __init__(self, providers: list[str | None] | None = None, store_status: int = 200) -> None:
        self.providers = providers or []
        self.store_status = store_status
        self.calls: list[dict[str, Any]] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/{tail:.*}", self._handle)
        return app

    async def _handle(self, request: web.Request) -> web.Response:
        if request.content_type == "application/x-www-form-urlencoded":
            body: Any = dict(await request.post())
        else:
            body = await request.json()
        self.calls.append(
            {
                "path": request.path,
                "query": dict(request.query),
                "authorization": request.headers.get("authorization"),
                "body": body,
            }
        )
        if request.path.endswith("/token"):
            return web.json_response({"access_token": "tok-1", "expires_in": 3600, "token_type": "Bearer"})
        if request.path.endswith(":runQuery"):
            if self.store_status != 200:
                return web.json_response({"error": {"message": "boom"}}, status=self.store_status)
            return web.json_response([self._doc(i, r) for i, r in enumerate(self.providers)])
        return web.json_response({"id": "notif-1", "recipients": len(body.get("include_subscription_ids", []))})

    @staticmethod
    def _doc(index: int, recipient: str | None) -> dict[str, Any]:
        value: dict[str, Any] = {"nullValue": None} if recipient is None else {"stringValue": recipient}
        return {
            "document": {
                "name": f"projects/proj/databases/(default)/documents/providers/p{index}",
                "fields": {"oneSignalSubscriptionId": value},
            },
            "readTime": "2024-01-01T00:00:00Z",
        }

    def paths(self, suffix: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["path"].endswith(suffix)]


def _config(server: TestServer, **store_kwargs: Any) -> DispatchConfig:
    base = str(server.make_url("")).rstrip("/")
    store_kwargs.setdefault("api_key", "api-key")
    return DispatchConfig(
        store=StoreConfig(project_id="proj", base_url=f"{base}/v1", **store_kwargs),
        push=PushConfig(app_id="app-1", rest_api_key="rest-1", api_url=f"{base}/api/v1/notifications"),
    )


@pytest.mark.asyncio
async def test_api_key_flow_notifies_providers() -> None:
    upstream = _Upstream(providers=["a", "a", None, "b"])
    async with TestServer(upstream.app()) as server:
        async with GeoDispatchService(_config(server)) as service:
            response = await service.handle({"service": "towing", "userLocation": _SF, "userName": "Ana"})

    assert response.http_status == 200
    assert response.body() == {"status": "success", "notified": 2}

    [query_call] = upstream.paths(":runQuery")
    assert query_call["path"] == "/v1/projects/proj/databases/(default)/documents:runQuery"
    assert query_call["query"] == {"key": "api-key"}
    assert query_call["body"]["structuredQuery"]["from"] == [{"collectionId": "providers"}]

    [push_call] = upstream.paths("/notifications")
    assert push_call["authorization"] == "Basic rest-1"
    assert push_call["body"]["include_subscription_ids"] == ["a", "b"]
    assert push_call["body"]["contents"] == {"en": "Ana needs help"}


@pytest.mark.asyncio
async def test_service_account_flow_reuses_token(rsa_pem: str) -> None:
    upstream = _Upstream(providers=["a"])
    async with TestServer(upstream.app()) as server:
        account = ServiceAccount(
            client_email="svc@proj.iam.gserviceaccount.com",
            private_key=rsa_pem,
            token_uri=str(server.make_url("/token")),
        )
        base = str(server.make_url("")).rstrip("/")
        config = DispatchConfig(
            store=StoreConfig(project_id="proj", base_url=f"{base}/v1"),
            push=PushConfig(app_id="app-1", rest_api_key="rest-1", api_url=f"{base}/api/v1/notifications"),
            service_account=account,
        )
        async with GeoDispatchService(config) as service:
            for _ in range(3):
                response = await service.handle({"service": "towing", "userLocation": _SF})
                assert response.body() == {"status": "success", "notified": 1}

    [token_call] = upstream.paths("/token")
    assert token_call["body"]["grant_type"] == "urn:ietf:params:oauth:grant-type:jwt-bearer"
    assert token_call["body"]["assertion"].count(".") == 2

    query_calls = upstream.paths(":runQuery")
    assert len(query_calls) == 3
    assert {call["authorization"] for call in query_calls} == {"Bearer tok-1"}
    assert all(call["query"] == {} for call in query_calls)


@pytest.mark.asyncio
async def test_store_outage_follows_policy() -> None:
    upstream = _Upstream(providers=["a"], store_status=503)
    async with TestServer(upstream.app()) as server:
        async with GeoDispatchService(_config(server)) as service:
            fail_open = await service.handle({"service": "towing", "userLocation": _SF})
        closed = _config(server, failure_policy=StoreFailurePolicy.FAIL_CLOSED)
        async with GeoDispatchService(closed) as service:
            fail_closed = await service.handle({"service": "towing", "userLocation": _SF})

    assert fail_open.body() == {"status": "no_providers", "notified": 0}
    assert fail_closed.http_status == 500
    assert upstream.paths("/notifications") == []


@pytest.mark.asyncio
async def test_handle_before_start_raises() -> None:
    config = DispatchConfig(
        store=StoreConfig(project_id="proj", api_key="k"),
        push=PushConfig(app_id="a", rest_api_key="r"),
    )
    with pytest.raises(GeoDispatchError):
        await GeoDispatchService(config).handle({})


@pytest.mark.asyncio
async def test_service_app_serves_requests() -> None:
    upstream = _Upstream(providers=["a", "b"])
    async with TestServer(upstream.app()) as server:
        async with TestClient(TestServer(create_service_app(_config(server)))) as client:
            resp = await client.post("/", json={"service": "towing", "userLocation": _SF})
            assert resp.status == 200
            assert await resp.json() == {"status": "success", "notified": 2}

            resp = await client.get("/")
            assert resp.status == 405
