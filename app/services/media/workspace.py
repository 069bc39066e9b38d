from __future__ import annotations

"""
Luminav — Scoped Workspace
==========================

One private temporary directory per ingestion run::

    {WORKSPACE_ROOT or $TMPDIR}/luminav_{kind}_{uuid}/
        input{.ext}      staged upload
        hls/             transcoder output (manifest + segments)

A workspace is only reachable through `acquire_workspace()`, an async context
manager whose exit removes the whole tree. Routers enter it on an
`AsyncExitStack` and hand the stack to the pipeline task (`pop_all()`), so the
tree is released exactly once whichever side finishes or fails first.
"""

import asyncio
import logging
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Optional

from app.core.config import settings
from app.core.exceptions import PayloadTooLarge

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024


@dataclass
class ScopedWorkspace:
    root: Path
    input_path: Path
    output_dir: Path
    released: bool = field(default=False)

    async def stage_upload(self, upload: Any, *, limit_bytes: Optional[int] = None) -> int:
        """
        Copy an uploaded file (anything with a `.file` object) to `input_path`.

        Returns the number of bytes written. Raises `PayloadTooLarge` as soon
        as the copy crosses `limit_bytes`.
        """
        limit = limit_bytes if limit_bytes is not None else settings.MAX_VIDEO_UPLOAD_BYTES
        src = getattr(upload, "file", upload)
        return await asyncio.to_thread(_copy_limited, src, self.input_path, limit)


def _copy_limited(src: BinaryIO, dst: Path, limit: int) -> int:
    if hasattr(src, "seek"):
        src.seek(0)
    written = 0
    with open(dst, "wb") as fh:
        while True:
            chunk = src.read(_COPY_CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise PayloadTooLarge(limit_bytes=limit)
            fh.write(chunk)
    return written


def _base_dir() -> Path:
    return Path(settings.WORKSPACE_ROOT) if settings.WORKSPACE_ROOT else Path(tempfile.gettempdir())


def _remove_tree(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
    if path.exists():  # pragma: no cover (platform dependent)
        logger.warning("Workspace cleanup left files behind: %s", path)


@asynccontextmanager
async def acquire_workspace(*, kind: str = "video", suffix: str = "") -> AsyncIterator[ScopedWorkspace]:
    """
    Create an isolated workspace and guarantee its removal.

    Creation failures propagate (the run cannot start without a workspace).
    """
    base = _base_dir()
    base.mkdir(parents=True, exist_ok=True)
    root = base / f"luminav_{kind}_{uuid.uuid4().hex}"
    root.mkdir()
    ws = ScopedWorkspace(
        root=root,
        input_path=root / f"input{suffix}",
        output_dir=root / "hls",
    )
    ws.output_dir.mkdir()
    logger.debug("Workspace acquired: %s", root)
    try:
        yield ws
    finally:
        await asyncio.to_thread(_remove_tree, root)
        ws.released = True
        logger.debug("Workspace released: %s", root)


__all__ = ["ScopedWorkspace", "acquire_workspace"]
