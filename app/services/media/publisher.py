from __future__ import annotations

"""
Luminav — Segment Publisher
===========================

Uploads every file of a transcoder output directory under one key prefix::

    {prefix}/output.manifest     application/vnd.apple.mpegurl
    {prefix}/segment_NNN.ts      video/mp2t

All uploads run concurrently (bounded by `UPLOAD_CONCURRENCY`; boto3 calls
are offloaded with `asyncio.to_thread`) and are joined before returning. The
step succeeds only if every upload succeeded; otherwise `PublishFailure`
carries the keys that did land so the caller can decide about cleanup.
Re-publishing to the same prefix overwrites objects in place.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from app.core.config import settings
from app.core.exceptions import PipelineCancelled, PublishFailure
from app.core.metrics import inc_object_uploaded
from app.core.storage import content_type_for, is_manifest, manifest_key
from app.utils.aws import S3Client

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    prefix: str
    manifest_key: str
    keys: List[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.keys)


class SegmentPublisher:
    def __init__(
        self,
        s3: S3Client,
        *,
        concurrency: Optional[int] = None,
        rollback_on_failure: Optional[bool] = None,
    ) -> None:
        self.s3 = s3
        self.concurrency = concurrency or settings.UPLOAD_CONCURRENCY
        self.rollback_on_failure = (
            settings.PUBLISH_ROLLBACK_ON_FAILURE if rollback_on_failure is None else rollback_on_failure
        )

    async def publish(
        self,
        output_dir: Path,
        prefix: str,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> PublishResult:
        prefix = prefix.strip("/")
        files = sorted(p for p in output_dir.iterdir() if p.is_file())
        if not files:
            raise PublishFailure("Nothing to upload: output directory is empty")

        sem = asyncio.Semaphore(self.concurrency)
        uploaded: List[str] = []

        async def _upload(path: Path) -> str:
            key = f"{prefix}/{path.name}"
            async with sem:
                if cancel is not None and cancel.is_set():
                    raise PipelineCancelled("Upload cancelled", stage="uploading")
                await asyncio.to_thread(
                    self.s3.put_file,
                    key,
                    path,
                    content_type=content_type_for(path.name),
                    content_disposition="inline",
                )
            uploaded.append(key)
            inc_object_uploaded("manifest" if is_manifest(path.name) else "segment")
            return key

        # return_exceptions: every started upload settles before we decide
        results = await asyncio.gather(*(_upload(p) for p in files), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]

        if errors:
            if cancel is not None and cancel.is_set():
                failure: PublishFailure | PipelineCancelled = PipelineCancelled("Upload cancelled", stage="uploading")
            else:
                failure = PublishFailure(
                    f"Upload to storage failed: {len(errors)} of {len(files)} files failed ({errors[0]})",
                    uploaded_keys=uploaded,
                )
            logger.error("Publish to %s/ failed: %d/%d uploads failed", prefix, len(errors), len(files))
            await self.rollback(uploaded)
            raise failure from errors[0]

        logger.info("Published %d objects under %s/", len(uploaded), prefix)
        return PublishResult(prefix=prefix, manifest_key=manifest_key(prefix), keys=sorted(uploaded))

    async def rollback(self, keys: List[str]) -> None:
        """Best-effort batch delete of `keys` when rollback is enabled."""
        if not self.rollback_on_failure or not keys:
            return
        failed = await asyncio.to_thread(self.s3.delete_many, keys)
        if failed:
            logger.warning("Rollback left %d orphaned objects (first: %s)", len(failed), failed[0])
        else:
            logger.info("Rolled back %d uploaded objects", len(keys))


__all__ = ["SegmentPublisher", "PublishResult"]
