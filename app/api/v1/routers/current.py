from __future__ import annotations

"""
Luminav • Current film (featured singleton)
===========================================

Route Index
-----------
- GET    /current                     → The featured film, or 404
- POST   /current                     → Create the one allowed record (409 if taken)
- DELETE /current                     → Clear the slot (storage untouched)
- POST   /current/upload-teaser       → Upload + transcode + publish a teaser (SSE)
- GET    /current/stream/{filename}   → 302 to a short-lived signed teaser URL

Notes
-----
- Creation never checks first: the `lock_key` UNIQUE constraint decides, so
  concurrent creators get exactly one 201 and the rest 409.
- Teaser runs are independent of the record; the `teaserUrl` they report is
  what a later `POST /current` normally carries.
"""

# ── [Imports] ─────────────────────────────────────────────────────────────────────────────
from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store, redirect_no_store, sse_response
from app.core.exceptions import NotFound, PersistenceConflict, StorageUnavailable, ValidationError
from app.db.session import get_async_db
from app.repositories.current_film import SqlCurrentFilmRepository
from app.schemas.enums import InsertOutcome, PipelineKind
from app.schemas.media import CurrentFilmCreateIn, CurrentFilmOut, missing_fields
from app.services.media.pipeline import start_ingestion
from app.services.media.playback import PlaybackUrlIssuer
from app.services.media.transcoder import FFmpegTranscoder, Transcoder
from app.utils.aws import S3Client, S3StorageError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Current film"])
__all__ = ["router"]


def _s3() -> S3Client:
    """Return an initialized S3 client or raise 503 if storage is unavailable."""
    try:
        return S3Client()
    except S3StorageError as e:
        raise StorageUnavailable(str(e))


def _transcoder() -> Transcoder:
    return FFmpegTranscoder()


def _film_payload(film) -> dict:
    return CurrentFilmOut.model_validate(film).model_dump(mode="json", by_alias=True)


# ╔════════════════════════════════ Route: Read ══════════════════════════════╗
# ║ 🎟️  GET /current                                                          ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.get("/current", summary="Get the current featured film")
async def get_current_film(db: AsyncSession = Depends(get_async_db)):
    film = await SqlCurrentFilmRepository(db).get()
    if film is None:
        raise NotFound("No current film set.")
    return {"success": True, "data": _film_payload(film)}


# ╔════════════════════════════════ Route: Create ════════════════════════════╗
# ║ 📝  POST /current                                                         ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.post(
    "/current",
    summary="Set the current featured film (only one may exist)",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Missing fields"}, 409: {"description": "A current film already exists"}},
)
async def create_current_film(payload: CurrentFilmCreateIn, db: AsyncSession = Depends(get_async_db)):
    missing = missing_fields(payload, ["title", "description", "video_url", "teaser_url"])
    if missing:
        raise ValidationError("Missing required fields", details={"fields": missing})

    outcome = await SqlCurrentFilmRepository(db).create(
        title=(payload.title or "").strip(),
        description=(payload.description or "").strip(),
        video_url=(payload.video_url or "").strip(),
        teaser_url=(payload.teaser_url or "").strip(),
    )
    if outcome is InsertOutcome.ALREADY_EXISTS:
        logger.info("Current film create rejected: slot already taken")
        raise PersistenceConflict("A current film already exists. Delete it before adding a new one.")

    logger.info("Current film set id=%s", outcome.id)
    return json_no_store(
        {"success": True, "message": "Current film saved successfully.", "data": _film_payload(outcome)},
        status_code=status.HTTP_201_CREATED,
    )


# ╔════════════════════════════════ Route: Delete ════════════════════════════╗
# ║ 🗑️  DELETE /current                                                        ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.delete("/current", summary="Clear the current featured film")
async def delete_current_film(db: AsyncSession = Depends(get_async_db)):
    if not await SqlCurrentFilmRepository(db).delete():
        raise NotFound("No current film to delete.")
    logger.info("Current film cleared")
    return json_no_store({"success": True, "message": "Current film deleted. You can now add a new one."})


# ╔════════════════════════════════ Route: Teaser upload (SSE) ═══════════════╗
# ║ 🎬  POST /current/upload-teaser                                           ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.post(
    "/current/upload-teaser",
    summary="Upload a teaser; streams conversion/upload progress as SSE",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Progress stream"},
        400: {"description": "No file"},
        413: {"description": "File too large"},
        415: {"description": "Not a video"},
    },
)
async def upload_teaser(request: Request, teaser: Optional[UploadFile] = File(None)):
    channel = await start_ingestion(
        teaser,
        kind=PipelineKind.TEASER,
        s3=_s3(),
        transcoder=_transcoder(),
        content_length=request.headers.get("content-length"),
    )
    return sse_response(channel.sse(), on_close=channel.detach)


# ╔════════════════════════════════ Route: Stream ════════════════════════════╗
# ║ ▶️  GET /current/stream/{filename}                                         ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
@router.get(
    "/current/stream/{filename}",
    summary="Redirect to a short-lived signed URL for a teaser file",
    status_code=status.HTTP_302_FOUND,
)
async def stream_teaser(filename: str):
    signed = PlaybackUrlIssuer(_s3()).issue_teaser(filename)
    logger.info("Teaser redirect → %s", signed.key)
    return redirect_no_store(signed.url)
