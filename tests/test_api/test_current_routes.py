# tests/test_api/test_current_routes.py

import asyncio
import json

import pytest

from app.services.media.pipeline import pipeline_runs
from tests.fixtures.media import workspace_dirs

pytestmark = pytest.mark.anyio

BASE = "/api/v1"


def _film(n=1, **over):
    body = {
        "title": f"Film {n}",
        "description": f"About film {n}",
        "videoUrl": f"https://b/ad_films/film_{n}/output.manifest",
        "teaserUrl": "https://b/short_films/teaser/output.manifest",
    }
    body.update(over)
    return body


async def test_get_current_when_empty(async_client):
    r = await async_client.get(f"{BASE}/current")
    assert r.status_code == 404
    assert r.json()["detail"] == "No current film set."


async def test_create_then_conflict_then_delete(async_client):
    r = await async_client.post(f"{BASE}/current", json=_film(1, title="  Film 1  "))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Current film saved successfully."
    assert body["data"]["title"] == "Film 1"
    assert body["data"]["teaserUrl"].endswith("/teaser/output.manifest")

    r = await async_client.post(f"{BASE}/current", json=_film(2))
    assert r.status_code == 409
    assert r.json()["detail"] == "A current film already exists. Delete it before adding a new one."

    r = await async_client.get(f"{BASE}/current")
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["data"]["title"] == "Film 1"

    r = await async_client.delete(f"{BASE}/current")
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Current film deleted. You can now add a new one."}

    r = await async_client.delete(f"{BASE}/current")
    assert r.status_code == 404
    assert r.json()["detail"] == "No current film to delete."

    r = await async_client.post(f"{BASE}/current", json=_film(2))
    assert r.status_code == 201


async def test_create_requires_every_field(async_client):
    r = await async_client.post(f"{BASE}/current", json={"title": "Only title", "videoUrl": " "})
    assert r.status_code == 400
    assert r.json()["details"]["fields"] == ["description", "videoUrl", "teaserUrl"]


async def test_concurrent_creates_over_http(async_client):
    results = await asyncio.gather(*(async_client.post(f"{BASE}/current", json=_film(n)) for n in range(5)))
    codes = sorted(r.status_code for r in results)
    assert codes == [201, 409, 409, 409, 409]


async def test_upload_teaser_streams_and_returns_url(async_client, fake_s3, workspace_root):
    r = await async_client.post(
        f"{BASE}/current/upload-teaser",
        files={"teaser": ("teaser.mp4", b"\x00" * 512, "video/mp4")},
    )
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    frames = [f for f in r.text.split("\n\n") if f.strip()]
    events = [json.loads(f[len("data: "):]) for f in frames]
    assert events[0] == {"type": "progress", "stage": "converting", "percent": 0}
    assert {"type": "progress", "stage": "uploading", "percent": 100} in events
    assert all(e.get("stage") != "saving" for e in events)
    assert events[-1] == {
        "type": "complete",
        "message": "Teaser uploaded (4 segments).",
        "teaserUrl": fake_s3.object_url("short_films/teaser/output.manifest"),
    }

    await pipeline_runs.wait_idle(timeout=5)
    assert workspace_dirs(workspace_root) == []
    # teaser runs never touch the current-film record
    assert (await async_client.get(f"{BASE}/current")).status_code == 404


async def test_upload_teaser_rejects_non_video(async_client):
    r = await async_client.post(
        f"{BASE}/current/upload-teaser",
        files={"teaser": ("notes.txt", b"hello", "text/plain")},
    )
    assert r.status_code == 415


async def test_upload_teaser_requires_file(async_client):
    r = await async_client.post(f"{BASE}/current/upload-teaser")
    assert r.status_code == 400
    assert r.json()["detail"] == "No teaser file uploaded"


async def test_teaser_stream_redirect(async_client, fake_s3):
    r = await async_client.get(f"{BASE}/current/stream/segment_002.ts")
    assert r.status_code == 302
    assert r.headers["location"].startswith("https://signed.example/short_films/teaser/segment_002.ts")
    assert r.headers["cache-control"] == "no-store"
    assert fake_s3.presign_calls[-1]["content_type"] == "video/mp2t"
