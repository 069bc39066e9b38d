# tests/fixtures/app.py
"""
🧩 App Fixture:
- Builds the real application via `create_app()`
- Swaps the routers' storage/transcoder collaborators for in-memory fakes
- Returns an httpx client bound to the ASGI app (no network)
"""

import importlib
from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.db.session import async_session_maker
from app.services.media.pipeline import pipeline_runs


@pytest.fixture()
async def app(prepare_database, fake_s3, fake_transcoder, monkeypatch) -> AsyncGenerator[FastAPI, None]:
    videos = importlib.import_module("app.api.v1.routers.videos")
    current = importlib.import_module("app.api.v1.routers.current")

    monkeypatch.setattr(videos, "_s3", lambda: fake_s3, raising=True)
    monkeypatch.setattr(videos, "_transcoder", lambda: fake_transcoder, raising=True)
    monkeypatch.setattr(videos, "_session_factory", lambda: async_session_maker, raising=True)
    monkeypatch.setattr(current, "_s3", lambda: fake_s3, raising=True)
    monkeypatch.setattr(current, "_transcoder", lambda: fake_transcoder, raising=True)

    from app.main import create_app

    yield create_app()

    # No run may outlive the test (it would touch dropped tables)
    await pipeline_runs.wait_idle(timeout=5)


@pytest.fixture()
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """🌐 Async HTTP client for integration tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
