# tests/test_api/test_videos_routes.py

import json

import pytest

from app.services.media.pipeline import pipeline_runs
from tests.fixtures.media import workspace_dirs

pytestmark = pytest.mark.anyio

BASE = "/api/v1"


def _sse_events(body: str):
    frames = [f for f in body.split("\n\n") if f.strip()]
    assert all(f.startswith("data: ") for f in frames)
    return [json.loads(f[len("data: "):]) for f in frames]


def _video_body(**over):
    body = {
        "category": "ad_films",
        "title": "My Cool Film!",
        "description": "A film",
        "thumbnailOne": "https://img/1.jpg",
        "thumbnailTwo": "https://img/2.jpg",
    }
    body.update(over)
    return body


# ─────────────────────────────────────────────────────────────
# Metadata CRUD
# ─────────────────────────────────────────────────────────────

async def test_create_video_metadata(async_client, fake_s3):
    r = await async_client.post(f"{BASE}/videos", json=_video_body())
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "Video metadata saved successfully"
    data = body["data"]
    assert data["category"] == "ad_films"
    assert data["videoUrl"] == fake_s3.object_url("ad_films/my_cool_film/output.manifest")
    assert data["thumbnails"] == ["https://img/1.jpg", "https://img/2.jpg"]
    assert isinstance(data["id"], int)


async def test_create_video_reports_all_missing_fields(async_client):
    r = await async_client.post(f"{BASE}/videos", json={"category": "ad_films", "title": "  "})
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "Missing required fields"
    assert body["details"]["fields"] == ["title", "description", "thumbnailOne", "thumbnailTwo"]


async def test_create_video_rejects_unknown_category_and_empty_slug(async_client):
    r = await async_client.post(f"{BASE}/videos", json=_video_body(category="documentaries"))
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid category"

    r = await async_client.post(f"{BASE}/videos", json=_video_body(title="!!!"))
    assert r.status_code == 400


async def test_list_get_delete(async_client):
    ids = []
    for title in ("one", "two", "three"):
        r = await async_client.post(f"{BASE}/videos", json=_video_body(title=title))
        ids.append(r.json()["data"]["id"])

    r = await async_client.get(f"{BASE}/videos")
    assert r.status_code == 200
    assert [v["title"] for v in r.json()] == ["three", "two", "one"]

    r = await async_client.get(f"{BASE}/videos", params={"limit": 1})
    assert [v["title"] for v in r.json()] == ["three"]

    r = await async_client.get(f"{BASE}/videos/{ids[0]}")
    assert r.status_code == 200 and r.json()["title"] == "one"

    r = await async_client.delete(f"{BASE}/videos/{ids[0]}")
    assert r.status_code == 200
    assert r.json() == {"message": "Video deleted successfully", "id": ids[0]}

    r = await async_client.get(f"{BASE}/videos/{ids[0]}")
    assert r.status_code == 404
    assert r.json()["detail"] == "Video not found"

    r = await async_client.delete(f"{BASE}/videos/{ids[0]}")
    assert r.status_code == 404


@pytest.mark.parametrize("limit", [0, -3, 101, "abc", "1.5"])
async def test_list_rejects_bad_limit(async_client, limit):
    r = await async_client.get(f"{BASE}/videos", params={"limit": limit})
    assert r.status_code == 400
    assert r.json()["details"] == {"field": "limit"}


@pytest.mark.parametrize("method", ["get", "delete"])
@pytest.mark.parametrize("video_id", ["abc", "0", "-4", str(2**63)])
async def test_bad_video_id_is_400(async_client, method, video_id):
    r = await getattr(async_client, method)(f"{BASE}/videos/{video_id}")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid video ID"


# ─────────────────────────────────────────────────────────────
# Upload (SSE)
# ─────────────────────────────────────────────────────────────

async def test_upload_streams_progress_and_records_video(async_client, fake_s3, workspace_root):
    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={
            "category": "short_films",
            "title": "Night Drive",
            "description": "Neon",
            "thumbnailOne": "https://img/a.jpg",
        },
        files={"video": ("night.mp4", b"\x00" * 2048, "video/mp4")},
    )
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache"
    assert r.headers["x-accel-buffering"] == "no"

    events = _sse_events(r.text)
    assert events[0] == {"type": "progress", "stage": "converting", "percent": 0}
    stages = [e["stage"] for e in events if e["type"] == "progress"]
    assert stages == sorted(stages, key=["converting", "uploading", "saving"].index)
    assert events[-1]["type"] == "complete"
    assert events[-1]["message"] == "Video uploaded successfully (4 chunks)"
    assert events[-1]["data"]["videoUrl"].endswith("short_films/night_drive/output.manifest")
    assert events[-1]["data"]["thumbnails"] == ["https://img/a.jpg", None]

    await pipeline_runs.wait_idle(timeout=5)
    assert "short_films/night_drive/segment_000.ts" in fake_s3.objects
    r = await async_client.get(f"{BASE}/videos")
    assert [v["title"] for v in r.json()] == ["Night Drive"]
    assert workspace_dirs(workspace_root) == []


async def test_upload_encoder_failure_streams_one_error(async_client, fake_s3, fake_transcoder, workspace_root):
    fake_transcoder.fail = "Video conversion failed (ffmpeg exit 1): moov atom not found"
    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={"category": "ad_films", "title": "Broken", "description": "x"},
        files={"video": ("broken.mp4", b"\x00" * 16, "video/mp4")},
    )
    events = _sse_events(r.text)
    assert events[-1] == {"type": "error", "message": "Video conversion failed (ffmpeg exit 1): moov atom not found"}
    assert [e["type"] for e in events].count("error") == 1

    await pipeline_runs.wait_idle(timeout=5)
    assert fake_s3.put_calls == []
    assert (await async_client.get(f"{BASE}/videos")).json() == []
    assert workspace_dirs(workspace_root) == []


async def test_upload_rejects_non_video_with_415(async_client, workspace_root):
    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={"category": "ad_films", "title": "Pic", "description": "x"},
        files={"video": ("pic.png", b"\x89PNG", "image/png")},
    )
    assert r.status_code == 415
    assert r.json()["detail"] == "Only video files are allowed"
    assert workspace_dirs(workspace_root) == []


async def test_upload_rejects_oversized_with_413(async_client, monkeypatch, workspace_root):
    from app.core.config import settings

    monkeypatch.setattr(settings, "MAX_VIDEO_UPLOAD_BYTES", 100)
    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={"category": "ad_films", "title": "Big", "description": "x"},
        files={"video": ("big.mp4", b"\x00" * 1000, "video/mp4")},
    )
    assert r.status_code == 413
    assert r.json()["detail"].startswith("File too large")
    assert workspace_dirs(workspace_root) == []


async def test_upload_requires_fields_and_file(async_client):
    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={"category": "ad_films"},
        files={"video": ("a.mp4", b"\x00", "video/mp4")},
    )
    assert r.status_code == 400
    assert r.json()["details"]["fields"] == ["title", "description"]

    r = await async_client.post(
        f"{BASE}/videos/upload",
        data={"category": "ad_films", "title": "No file", "description": "x"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "No video file uploaded"


# ─────────────────────────────────────────────────────────────
# Playback redirect
# ─────────────────────────────────────────────────────────────

async def test_stream_redirects_to_signed_url(async_client, fake_s3):
    r = await async_client.get(f"{BASE}/videos/stream/ad_films/my_cool_film/output.manifest")
    assert r.status_code == 302
    assert r.headers["location"] == "https://signed.example/ad_films/my_cool_film/output.manifest?X-Amz-Expires=600"
    assert r.headers["cache-control"] == "no-store"
    assert fake_s3.presign_calls[-1]["content_type"] == "application/vnd.apple.mpegurl"


async def test_stream_rejects_bad_filename(async_client, fake_s3):
    r = await async_client.get(f"{BASE}/videos/stream/ad_films/x/seg%20ment.ts")
    assert r.status_code == 400
    assert fake_s3.presign_calls == []
