from __future__ import annotations

"""
Luminav — Ingestion Pipeline
============================

One sequential run per upload request:

    stage (router) → transcode → publish → [persist] → terminal event

Every run owns the `AsyncExitStack` holding its workspace, so the workspace is
released exactly once when the run ends, on success, on a stage failure or
on task cancellation. The workspace is gone before the terminal event is
sent, so a client that has seen `complete`/`error` never races the cleanup.

Failures
--------
Stage failures (`MediaPipelineError`, `TransientStoreError`, anything else)
are caught at the run boundary, logged with their traceback and turned into
one terminal `error` event carrying a message that names the failed step.

Cancellation
------------
Each run carries a `CancellationToken`. It is observed by the transcoder
(process killed), the publisher (no new uploads start) and before the
persist step. Routers trip it on client disconnect only when
`CANCEL_ON_CLIENT_DISCONNECT` is enabled; `PipelineRegistry.shutdown()` trips
it for every live run when the application stops.
"""

import asyncio
import time
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger

from app.core.config import settings
from app.core.exceptions import (
    MediaPipelineError,
    PipelineCancelled,
    TransientStoreError,
)
from app.core.metrics import inc_pipeline_run, observe_stage_seconds
from app.core.storage import TEASER_PREFIX, manifest_key, video_prefix
from app.repositories.videos import SqlVideoRepository
from app.schemas.enums import PipelineKind, ProgressStage, VideoCategory
from app.schemas.media import VideoOut
from app.services.media.progress import ProgressChannel
from app.services.media.publisher import PublishResult, SegmentPublisher
from app.services.media.transcoder import TranscodeResult, Transcoder
from app.services.media.uploads import safe_suffix, validate_video_upload
from app.services.media.workspace import ScopedWorkspace, acquire_workspace
from app.utils.aws import S3Client

SessionFactory = Callable[[], Any]


# ──────────────────────────────────────────────────────────────
# 🛑 Cancellation
# ──────────────────────────────────────────────────────────────
class CancellationToken(asyncio.Event):
    """An `asyncio.Event` with a reason; set means "stop at the next suspension point"."""

    def __init__(self) -> None:
        super().__init__()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self.is_set():
            self.reason = reason
            self.set()

    @property
    def cancelled(self) -> bool:
        return self.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self.is_set():
            raise PipelineCancelled(f"Upload cancelled ({self.reason})", stage=stage)


# ──────────────────────────────────────────────────────────────
# 📋 Jobs
# ──────────────────────────────────────────────────────────────
@dataclass
class VideoJob:
    category: VideoCategory
    title: str
    slug: str
    description: str
    thumbnail_one: Optional[str] = None
    thumbnail_two: Optional[str] = None

    @property
    def prefix(self) -> str:
        return video_prefix(self.category, self.slug)


_FAILURE_MESSAGES = {
    "converting": "Video conversion failed",
    "uploading": "Upload to storage failed",
    "saving": "Saving video metadata failed",
}


# ──────────────────────────────────────────────────────────────
# 🎞️ Pipeline
# ──────────────────────────────────────────────────────────────
class IngestionPipeline:
    def __init__(
        self,
        *,
        s3: S3Client,
        transcoder: Transcoder,
        channel: ProgressChannel,
        session_factory: Optional[SessionFactory] = None,
        publisher: Optional[SegmentPublisher] = None,
        cancel: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.s3 = s3
        self.transcoder = transcoder
        self.channel = channel
        self.session_factory = session_factory
        self.publisher = publisher or SegmentPublisher(s3)
        self.cancel = cancel or CancellationToken()
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._stage = "pipeline"

    # ── Public entry points ─────────────────────────────────
    async def run_video(self, stack: AsyncExitStack, workspace: ScopedWorkspace, job: VideoJob) -> None:
        async def body() -> Tuple[str, Dict[str, Any]]:
            result = await self._transcode(workspace)
            published = await self._publish(workspace, job.prefix)
            await self.channel.progress(ProgressStage.UPLOADING, 100)
            await self.channel.progress(ProgressStage.SAVING, 100)
            try:
                data = await self._persist_video(job, published)
            except BaseException:
                await self.publisher.rollback(published.keys)
                raise
            logger.info("Video {} published ({} segments)", job.prefix, result.segment_count)
            return f"Video uploaded successfully ({published.file_count} chunks)", {"data": data}

        await self._execute(PipelineKind.VIDEO, stack, body)

    async def run_teaser(self, stack: AsyncExitStack, workspace: ScopedWorkspace) -> None:
        async def body() -> Tuple[str, Dict[str, Any]]:
            await self._transcode(workspace)
            published = await self._publish(workspace, TEASER_PREFIX)
            await self.channel.progress(ProgressStage.UPLOADING, 100)
            teaser_url = self.s3.object_url(published.manifest_key)
            return f"Teaser uploaded ({published.file_count} segments).", {"teaser_url": teaser_url}

        await self._execute(PipelineKind.TEASER, stack, body)

    # ── Run boundary ────────────────────────────────────────
    async def _execute(
        self,
        kind: PipelineKind,
        stack: AsyncExitStack,
        body: Callable[[], Awaitable[Tuple[str, Dict[str, Any]]]],
    ) -> None:
        with logger.contextualize(run_id=self.run_id):
            logger.info("Ingestion run started (kind={})", kind.value)
            outcome: Optional[Tuple[str, Dict[str, Any]]] = None
            error_message: Optional[str] = None
            result_label = "error"
            try:
                async with stack:
                    await self.channel.progress(ProgressStage.CONVERTING, 0)
                    outcome = await body()
                result_label = "ok"
            except PipelineCancelled as e:
                result_label = "cancelled"
                error_message = str(e)
                logger.warning("Ingestion run cancelled during {}: {}", e.stage, e)
            except MediaPipelineError as e:
                error_message = str(e)
                logger.opt(exception=e).error("Ingestion run failed during {}", e.stage)
            except TransientStoreError as e:
                error_message = f"{_FAILURE_MESSAGES['saving']}: database unavailable"
                logger.opt(exception=e).error("Ingestion run failed during saving")
            except asyncio.CancelledError:
                inc_pipeline_run(kind.value, "cancelled")
                self.channel.abort("Upload interrupted: server is shutting down")
                raise
            except Exception as e:
                prefix = _FAILURE_MESSAGES.get(self._stage, "Upload failed")
                error_message = f"{prefix}: {e}" if str(e) else prefix
                logger.opt(exception=e).error("Ingestion run failed unexpectedly during {}", self._stage)

            inc_pipeline_run(kind.value, result_label)
            if outcome is not None:
                message, payload = outcome
                await self.channel.complete(message, **payload)
            else:
                await self.channel.error(error_message or "Upload failed")
            logger.info("Ingestion run finished (kind={}, result={})", kind.value, result_label)

    @asynccontextmanager
    async def _timed(self, stage: str) -> AsyncIterator[None]:
        self._stage = stage
        started = time.monotonic()
        result = "error"
        try:
            yield
            result = "ok"
        finally:
            observe_stage_seconds(stage, result, time.monotonic() - started)

    # ── Stages ──────────────────────────────────────────────
    async def _transcode(self, workspace: ScopedWorkspace) -> TranscodeResult:
        async with self._timed("converting"):
            self.cancel.raise_if_cancelled("converting")

            async def on_progress(percent: float) -> None:
                await self.channel.progress(ProgressStage.CONVERTING, percent)

            return await self.transcoder.transcode(
                workspace.input_path,
                workspace.output_dir,
                on_progress=on_progress,
                cancel=self.cancel,
            )

    async def _publish(self, workspace: ScopedWorkspace, prefix: str) -> PublishResult:
        async with self._timed("uploading"):
            self.cancel.raise_if_cancelled("uploading")
            return await self.publisher.publish(workspace.output_dir, prefix, cancel=self.cancel)

    async def _persist_video(self, job: VideoJob, published: PublishResult) -> Dict[str, Any]:
        async with self._timed("saving"):
            self.cancel.raise_if_cancelled("saving")
            if self.session_factory is None:
                raise RuntimeError("No database session factory configured")
            async with self.session_factory() as session:
                video = await SqlVideoRepository(session).create(
                    category=job.category,
                    title=job.title,
                    description=job.description,
                    thumbnail_one=job.thumbnail_one,
                    thumbnail_two=job.thumbnail_two,
                    video_url=self.s3.object_url(manifest_key(job.prefix)),
                )
                return VideoOut.from_model(video).model_dump(mode="json", by_alias=True)


# ──────────────────────────────────────────────────────────────
# 🗂️ Run registry
# ──────────────────────────────────────────────────────────────
class PipelineRegistry:
    """Tracks live runs so shutdown can stop them and tests can await them."""

    def __init__(self) -> None:
        self._runs: Dict[str, Tuple[asyncio.Task, CancellationToken]] = {}

    def start(self, run_id: str, coro: Awaitable[None], token: CancellationToken) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._runs[run_id] = (task, token)

        def _done(t: asyncio.Task) -> None:
            self._runs.pop(run_id, None)
            if not t.cancelled() and t.exception() is not None:
                logger.opt(exception=t.exception()).error("Ingestion task {} crashed", run_id)

        task.add_done_callback(_done)
        return task

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        tasks = [t for t, _ in self._runs.values()]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Trip every token, give runs `grace_seconds` to unwind, then cancel."""
        if not self._runs:
            return
        logger.info("Stopping {} in-flight ingestion run(s)", len(self._runs))
        for _, token in list(self._runs.values()):
            token.cancel("shutdown")
        tasks = [t for t, _ in self._runs.values()]
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


pipeline_runs = PipelineRegistry()


# ──────────────────────────────────────────────────────────────
# 🚀 Launch (called by the upload routers)
# ──────────────────────────────────────────────────────────────
async def start_ingestion(
    upload: Any,
    *,
    kind: PipelineKind,
    s3: S3Client,
    transcoder: Transcoder,
    session_factory: Optional[SessionFactory] = None,
    job: Optional[VideoJob] = None,
    content_length: Optional[str] = None,
    registry: Optional[PipelineRegistry] = None,
) -> ProgressChannel:
    """
    Validate and stage `upload`, then start the run in the background.

    Steps
    -----
    1) Reject non-video MIME types (415) and oversized payloads (413) before
       any workspace exists.
    2) Acquire a workspace and stage the upload into it. The bytes must be
       copied now: the multipart spool is closed once the endpoint returns.
    3) Hand the workspace's exit stack to the run task, which releases it.

    Returns the run's `ProgressChannel`; the caller streams `channel.sse()`.
    """
    validate_video_upload(upload, content_length=content_length, field="video" if kind is PipelineKind.VIDEO else "teaser")
    if kind is PipelineKind.VIDEO and job is None:
        raise ValueError("video runs need a VideoJob")

    registry = registry or pipeline_runs
    token = CancellationToken()
    on_detach = (lambda: token.cancel("client disconnected")) if settings.CANCEL_ON_CLIENT_DISCONNECT else None
    channel = ProgressChannel(on_detach=on_detach)
    pipeline = IngestionPipeline(
        s3=s3,
        transcoder=transcoder,
        channel=channel,
        session_factory=session_factory,
        cancel=token,
    )

    async with AsyncExitStack() as stack:
        workspace = await stack.enter_async_context(
            acquire_workspace(kind=kind.value, suffix=safe_suffix(getattr(upload, "filename", None)))
        )
        size = await workspace.stage_upload(upload)
        owned = stack.pop_all()

    with logger.contextualize(run_id=pipeline.run_id):
        logger.info("Staged {} bytes for {} run", size, kind.value)
    if kind is PipelineKind.VIDEO:
        coro = pipeline.run_video(owned, workspace, job)  # type: ignore[arg-type]
    else:
        coro = pipeline.run_teaser(owned, workspace)
    registry.start(pipeline.run_id, coro, token)
    return channel


__all__ = [
    "CancellationToken",
    "VideoJob",
    "IngestionPipeline",
    "PipelineRegistry",
    "pipeline_runs",
    "start_ingestion",
]
