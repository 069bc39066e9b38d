# tests/test_api/test_meta_routes.py

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import StreamingResponse

from app.middleware.server_header import StripServerHeaderMiddleware

pytestmark = pytest.mark.anyio


async def test_healthz(async_client):
    r = await async_client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


async def test_readyz_checks_database(async_client):
    r = await async_client.get("/readyz")
    assert r.status_code == 200
    body = r.json()
    assert body["ready"] is True
    assert body["checks"] == {"db": True}


async def test_metrics_exposes_pipeline_counters(async_client):
    r = await async_client.get("/metrics")
    assert r.status_code == 200
    assert "media_pipeline_runs_total" in r.text


async def test_request_id_is_echoed_or_generated(async_client):
    rid = str(uuid.uuid4())
    r = await async_client.get("/healthz", headers={"X-Request-ID": rid})
    assert r.headers["x-request-id"] == rid

    r = await async_client.get("/healthz", headers={"X-Request-ID": "not-a-uuid; forged"})
    assert r.headers["x-request-id"] != "not-a-uuid; forged"
    uuid.UUID(r.headers["x-request-id"])


async def test_server_header_is_stripped(async_client):
    r = await async_client.get("/healthz")
    assert "server" not in r.headers


async def test_no_buffering_http_middleware_in_chain(app):
    assert all(m.cls is not BaseHTTPMiddleware for m in app.user_middleware)


async def test_server_header_stripped_from_streams_and_background_runs():
    closed = []

    async def _body():
        yield "data: 1\n\n"
        yield "data: 2\n\n"

    async def _on_close():
        closed.append(True)

    async def inner(scope, receive, send):
        resp = StreamingResponse(
            _body(),
            media_type="text/event-stream",
            headers={"Server": "uvicorn"},
            background=BackgroundTask(_on_close),
        )
        await resp(scope, receive, send)

    transport = ASGITransport(app=StripServerHeaderMiddleware(inner))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        r = await client.get("/events")

    assert r.status_code == 200
    assert "server" not in r.headers
    assert r.text == "data: 1\n\ndata: 2\n\n"
    assert closed == [True]
