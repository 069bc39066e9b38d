from __future__ import annotations

"""
Luminav — Transcoder Adapter (ffmpeg → HLS)
===========================================

Converts one staged input file into a VOD HLS set inside the workspace::

    hls/output.manifest
    hls/segment_000.ts, segment_001.ts, ...

The encoding profile is fixed: H.264 1500 kbps video scaled to 1280x720,
AAC 128 kbps audio, 4 second MPEG-TS segments numbered from 0.

Progress is read from ffmpeg's `-progress pipe:1` key/value stream
(`out_time_us=` / `out_time_ms=`, both microseconds) against the duration
reported by ffprobe, and forwarded as a float percentage through an async
callback. The callback may see values outside 0..100; callers clamp.

Failure modes (all raise `TranscodeFailure`):
- non-zero exit, timeout (process killed), missing manifest, zero segments
Cancellation (token tripped) kills the process and raises `PipelineCancelled`.
"""

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol

from app.core.config import settings
from app.core.exceptions import PipelineCancelled, TranscodeFailure
from app.core.storage import MANIFEST_NAME, SEGMENT_PATTERN, is_segment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

# Fixed encoding profile
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
VIDEO_BITRATE = "1500k"
AUDIO_BITRATE = "128k"
OUTPUT_SCALE = "1280:720"
SEGMENT_SECONDS = 4

_PROBE_TIMEOUT = 30.0
_STDERR_TAIL = 20


@dataclass
class TranscodeResult:
    manifest_path: Path
    segment_paths: List[Path] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.segment_paths)


class Transcoder(Protocol):
    async def transcode(
        self,
        input_path: Path,
        output_dir: Path,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TranscodeResult:
        ...


def build_hls_command(ffmpeg_bin: str, input_path: Path, output_dir: Path) -> List[str]:
    """ffmpeg argv for the fixed VOD profile."""
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(input_path),
        "-c:v", VIDEO_CODEC,
        "-c:a", AUDIO_CODEC,
        "-b:v", VIDEO_BITRATE,
        "-b:a", AUDIO_BITRATE,
        "-vf", f"scale={OUTPUT_SCALE}",
        "-f", "hls",
        "-hls_time", str(SEGMENT_SECONDS),
        "-hls_playlist_type", "vod",
        "-hls_segment_type", "mpegts",
        "-start_number", "0",
        "-hls_segment_filename", str(output_dir / SEGMENT_PATTERN),
        "-progress", "pipe:1",
        "-nostats",
        str(output_dir / MANIFEST_NAME),
    ]


def parse_progress_line(line: str, duration: float) -> Optional[float]:
    """
    Percent for one `-progress` line, or None when the line carries no position.

    `progress=end` maps to 100.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress" and value == "end":
        return 100.0
    if key not in ("out_time_us", "out_time_ms") or duration <= 0:
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    return micros / 1_000_000.0 / duration * 100.0


def collect_output(output_dir: Path) -> TranscodeResult:
    """Manifest plus ordered segments; raises when either is missing."""
    manifest = output_dir / MANIFEST_NAME
    if not manifest.is_file():
        raise TranscodeFailure("Transcoder did not produce a manifest")
    segments = sorted(p for p in output_dir.iterdir() if p.is_file() and is_segment(p.name))
    if not segments:
        raise TranscodeFailure("Transcoder produced no segments")
    return TranscodeResult(manifest_path=manifest, segment_paths=segments)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass
    try:
        await asyncio.wait_for(process.wait(), timeout=5.0)
    except asyncio.TimeoutError:  # pragma: no cover
        logger.warning("ffmpeg pid=%s did not exit after kill", process.pid)


class FFmpegTranscoder:
    """`Transcoder` backed by the ffmpeg/ffprobe executables."""

    def __init__(
        self,
        *,
        ffmpeg_bin: Optional[str] = None,
        ffprobe_bin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.ffmpeg_bin = ffmpeg_bin or settings.FFMPEG_BINARY
        self.ffprobe_bin = ffprobe_bin or settings.FFPROBE_BINARY
        self.timeout = float(timeout or settings.TRANSCODE_TIMEOUT_SECONDS)

    async def probe_duration(self, input_path: Path) -> float:
        """Container duration in seconds; 0.0 when ffprobe cannot tell."""
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(input_path),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("ffprobe could not start: %s", e)
            return 0.0
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=_PROBE_TIMEOUT)
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning("ffprobe timed out after %ss", _PROBE_TIMEOUT)
            return 0.0
        if process.returncode != 0:
            logger.warning("ffprobe failed: %s", stderr.decode("utf-8", errors="ignore").strip()[:500])
            return 0.0
        try:
            return max(0.0, float(json.loads(stdout or b"{}").get("format", {}).get("duration", 0.0)))
        except (ValueError, TypeError, AttributeError):
            return 0.0

    async def transcode(
        self,
        input_path: Path,
        output_dir: Path,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TranscodeResult:
        duration = await self.probe_duration(input_path)
        cmd = build_hls_command(self.ffmpeg_bin, input_path, output_dir)
        logger.info("Transcoding %s (duration=%.1fs)", input_path.name, duration)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeFailure(f"Could not start ffmpeg: {e}") from e

        stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL)

        async def read_progress() -> None:
            assert process.stdout is not None
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                percent = parse_progress_line(line.decode("utf-8", errors="ignore"), duration)
                if percent is not None and on_progress is not None:
                    await on_progress(percent)

        async def read_stderr() -> None:
            # Drained concurrently so a chatty encoder never blocks on a full pipe.
            assert process.stderr is not None
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                stderr_tail.append(line.decode("utf-8", errors="ignore").rstrip())

        async def drain_and_wait() -> None:
            await asyncio.gather(read_progress(), read_stderr())
            await process.wait()

        work = asyncio.ensure_future(drain_and_wait())
        waiters = {work}
        cancel_wait: Optional[asyncio.Future] = None
        if cancel is not None:
            cancel_wait = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_wait)

        timed_out = cancelled = False
        try:
            done, _ = await asyncio.wait(waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
            if work not in done:
                cancelled = cancel_wait is not None and cancel_wait in done
                timed_out = not cancelled
                await _kill(process)
                await asyncio.gather(work, return_exceptions=True)
            else:
                work.result()
        finally:
            if cancel_wait is not None and not cancel_wait.done():
                cancel_wait.cancel()
            if not work.done():
                work.cancel()
            await _kill(process)

        if cancelled:
            raise PipelineCancelled("Conversion cancelled", stage="converting")
        if timed_out:
            raise TranscodeFailure(f"Video conversion timed out after {self.timeout:.0f}s")
        if process.returncode != 0:
            detail = stderr_tail[-1] if stderr_tail else "no diagnostics"
            logger.error("ffmpeg exited with %s; stderr tail:\n%s", process.returncode, "\n".join(stderr_tail))
            raise TranscodeFailure(f"Video conversion failed (ffmpeg exit {process.returncode}): {detail}")

        return collect_output(output_dir)


__all__ = [
    "Transcoder",
    "TranscodeResult",
    "FFmpegTranscoder",
    "build_hls_command",
    "parse_progress_line",
    "collect_output",
]
