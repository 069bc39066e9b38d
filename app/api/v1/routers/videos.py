from __future__ import annotations

"""
Luminav • Videos (catalogue + ingestion + playback)
===================================================

Route Index
-----------
- POST   /videos                                   → Record metadata for an already-published prefix
- GET    /videos?limit=                            → Newest-first list
- GET    /videos/{video_id}                        → One video or 404
- DELETE /videos/{video_id}                        → Remove the record (storage untouched)
- POST   /videos/upload                            → Upload + transcode + publish + record (SSE)
- GET    /videos/stream/{category}/{slug}/{file}   → 302 to a short-lived signed URL

Notes
-----
- The upload endpoint answers with `text/event-stream`; request-level
  problems (missing fields, bad MIME type, oversized file) are rejected with
  a normal problem+JSON error before the stream opens.
- Signed-URL redirects are `no-store`; every request signs a fresh URL.
"""

# ── [Imports] ─────────────────────────────────────────────────────────────────────────────
from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store, redirect_no_store, sse_response
from app.core.exceptions import NotFound, StorageUnavailable, ValidationError
from app.core.storage import manifest_key, slugify_title, video_prefix
from app.db.session import async_session_maker, get_async_db
from app.repositories.videos import SqlVideoRepository, validate_limit
from app.schemas.enums import PipelineKind, VideoCategory
from app.schemas.media import VideoCreateIn, VideoOut, missing_fields
from app.services.media.pipeline import VideoJob, start_ingestion
from app.services.media.playback import PlaybackUrlIssuer
from app.services.media.transcoder import FFmpegTranscoder, Transcoder
from app.utils.aws import S3Client, S3StorageError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Videos"])
__all__ = ["router"]

# ─────────────────────────────────────────────────────────────────────────────
# 🧩 Collaborators (module-level so tests can monkeypatch them)
# ─────────────────────────────────────────────────────────────────────────────

def _s3() -> S3Client:
    """Return an initialized S3 client or raise 503 if storage is unavailable."""
    try:
        return S3Client()
    except S3StorageError as e:
        raise StorageUnavailable(str(e))


def _transcoder() -> Transcoder:
    return FFmpegTranscoder()


def _session_factory():
    return async_session_maker


def _parse_category(value: str) -> VideoCategory:
    try:
        return VideoCategory((value or "").strip())
    except ValueError:
        allowed = [c.value for c in VideoCategory]
        raise ValidationError("Invalid category", details={"allowed": allowed})


def _parse_video_id(raw: str) -> int:
    try:
        video_id = int(raw.strip())
    except ValueError:
        video_id = 0
    # BIGINT primary key
    if not 0 < video_id < 2**63:
        raise ValidationError("Invalid video ID", details={"field": "video_id"})
    return video_id


def _parse_limit(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        limit = int(raw.strip())
    except ValueError:
        raise ValidationError("limit must be a positive integer", details={"field": "limit"})
    try:
        return validate_limit(limit)
    except ValueError as e:
        raise ValidationError(str(e), details={"field": "limit"})


def _slug_or_400(title: str) -> str:
    slug = slugify_title(title)
    if not slug:
        raise ValidationError("Title must contain at least one letter or digit", details={"fields": ["title"]})
    return slug


# ╔════════════════════════════════ Route: Create ════════════════════════════╗
# ║ 📝  POST /videos                                                          ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.post(
    "/videos",
    summary="Record metadata for a published video",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Missing/invalid fields"}, 503: {"description": "Storage not configured"}},
)
async def create_video(payload: VideoCreateIn, db: AsyncSession = Depends(get_async_db)):
    # [Step 1] Validate required fields (report all at once)
    missing = missing_fields(payload, ["category", "title", "description", "thumbnail_one", "thumbnail_two"])
    if missing:
        raise ValidationError("Missing required fields", details={"fields": missing})
    category = _parse_category(payload.category or "")
    title = (payload.title or "").strip()
    slug = _slug_or_400(title)

    # [Step 2] Manifest URL is derived from category + slug alone
    video_url = _s3().object_url(manifest_key(video_prefix(category, slug)))

    # [Step 3] Insert
    video = await SqlVideoRepository(db).create(
        category=category,
        title=title,
        description=(payload.description or "").strip(),
        thumbnail_one=payload.thumbnail_one,
        thumbnail_two=payload.thumbnail_two,
        video_url=video_url,
    )
    logger.info("Video metadata recorded id=%s prefix=%s", video.id, video_prefix(category, slug))
    return json_no_store(
        {
            "message": "Video metadata saved successfully",
            "data": VideoOut.from_model(video).model_dump(mode="json", by_alias=True),
        },
        status_code=status.HTTP_201_CREATED,
    )


# ╔════════════════════════════════ Route: List ══════════════════════════════╗
# ║ 📚  GET /videos                                                           ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.get("/videos", summary="List videos (newest first)")
async def list_videos(
    limit: Optional[str] = Query(None, description="Positive integer, at most 100"),
    db: AsyncSession = Depends(get_async_db),
):
    videos = await SqlVideoRepository(db).list(limit=_parse_limit(limit))
    return [VideoOut.from_model(v).model_dump(mode="json", by_alias=True) for v in videos]


# ╔════════════════════════════════ Route: Upload (SSE) ══════════════════════╗
# ║ 🎬  POST /videos/upload                                                   ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.post(
    "/videos/upload",
    summary="Upload a video; streams conversion/upload progress as SSE",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Progress stream"},
        400: {"description": "Missing fields or file"},
        413: {"description": "File too large"},
        415: {"description": "Not a video"},
    },
)
async def upload_video(
    request: Request,
    video: Optional[UploadFile] = File(None),
    category: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail_one: Optional[str] = Form(None, alias="thumbnailOne"),
    thumbnail_two: Optional[str] = Form(None, alias="thumbnailTwo"),
):
    # [Step 1] Request-level validation (never reaches the pipeline)
    form = VideoCreateIn(category=category, title=title, description=description)
    missing = missing_fields(form, ["category", "title", "description"])
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}", details={"fields": missing})
    job = VideoJob(
        category=_parse_category(category or ""),
        title=(title or "").strip(),
        slug=_slug_or_400(title or ""),
        description=(description or "").strip(),
        thumbnail_one=(thumbnail_one or "").strip() or None,
        thumbnail_two=(thumbnail_two or "").strip() or None,
    )

    # [Step 2] Validate + stage the file, start the run
    channel = await start_ingestion(
        video,
        kind=PipelineKind.VIDEO,
        s3=_s3(),
        transcoder=_transcoder(),
        session_factory=_session_factory(),
        job=job,
        content_length=request.headers.get("content-length"),
    )

    # [Step 3] Stream progress until the terminal event
    return sse_response(channel.sse(), on_close=channel.detach)


# ╔════════════════════════════════ Route: Stream ════════════════════════════╗
# ║ ▶️  GET /videos/stream/{category}/{slug}/{filename}                        ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.get(
    "/videos/stream/{category}/{slug}/{filename}",
    summary="Redirect to a short-lived signed URL for a manifest or segment",
    status_code=status.HTTP_302_FOUND,
    responses={302: {"description": "Redirect to signed URL"}, 400: {"description": "Invalid path"}},
)
async def stream_video(category: str, slug: str, filename: str):
    signed = PlaybackUrlIssuer(_s3()).issue(category, slug, filename)
    logger.info("Stream redirect → %s", signed.key)
    return redirect_no_store(signed.url)


# ╔════════════════════════════════ Route: Get / Delete ══════════════════════╗
# ║ 🔎  GET /videos/{video_id}      🗑️  DELETE /videos/{video_id}              ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.get("/videos/{video_id}", summary="Get one video")
async def get_video(video_id: str, db: AsyncSession = Depends(get_async_db)):
    video = await SqlVideoRepository(db).get_by_id(_parse_video_id(video_id))
    if video is None:
        raise NotFound("Video not found")
    return VideoOut.from_model(video).model_dump(mode="json", by_alias=True)


@router.delete("/videos/{video_id}", summary="Delete a video record (storage untouched)")
async def delete_video(video_id: str, db: AsyncSession = Depends(get_async_db)):
    vid = _parse_video_id(video_id)
    deleted = await SqlVideoRepository(db).delete(vid)
    if not deleted:
        raise NotFound("Video not found")
    logger.info("Video record deleted id=%s", vid)
    return json_no_store({"message": "Video deleted successfully", "id": vid})
