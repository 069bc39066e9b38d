from __future__ import annotations

"""
Luminav • S3 Layout
===================

Documented S3 key layout (single private bucket):

    s3://{bucket}/
      {category}/{slug}/output.manifest
      {category}/{slug}/segment_000.ts, segment_001.ts, ...
      short_films/teaser/output.manifest
      short_films/teaser/segment_000.ts, ...

The slug is derived from the human title, so re-running an ingestion with the
same title lands on the same prefix and overwrites it. The teaser lives under
a fixed prefix: every teaser upload replaces the previous one.

Security
--------
- All objects private; playback goes through short-lived presigned GETs.
"""

import re

from app.schemas.enums import VideoCategory

# File names produced by the transcoder
MANIFEST_NAME = "output.manifest"
SEGMENT_PREFIX = "segment_"
SEGMENT_SUFFIX = ".ts"
SEGMENT_PATTERN = f"{SEGMENT_PREFIX}%03d{SEGMENT_SUFFIX}"

# Fixed teaser prefix (no per-title slug)
TEASER_PREFIX = f"{VideoCategory.SHORT_FILMS.value}/teaser"

# MIME types by role
PLAYLIST_MIME = "application/vnd.apple.mpegurl"
SEGMENT_MIME = "video/mp2t"
BINARY_MIME = "application/octet-stream"

_PLAYLIST_EXTS = (".manifest", ".m3u8")
_WS_RE = re.compile(r"\s+")
_UNSAFE_RE = re.compile(r"[^a-z0-9_]")


def slugify_title(title: str) -> str:
    """
    Folder-safe slug for a human title.

    Example::
        "My Cool Film!" -> "my_cool_film"
    """
    s = (title or "").strip().lower()
    s = _WS_RE.sub("_", s)
    return _UNSAFE_RE.sub("", s)


def video_prefix(category: VideoCategory | str, slug: str) -> str:
    cat = category.value if isinstance(category, VideoCategory) else str(category)
    return f"{cat}/{slug}"


def manifest_key(prefix: str) -> str:
    return f"{prefix.rstrip('/')}/{MANIFEST_NAME}"


def content_type_for(filename: str) -> str:
    """Playlist for manifests, transport stream for segments, binary otherwise."""
    name = (filename or "").lower()
    if name.endswith(_PLAYLIST_EXTS):
        return PLAYLIST_MIME
    if name.endswith(SEGMENT_SUFFIX):
        return SEGMENT_MIME
    return BINARY_MIME


def is_manifest(filename: str) -> bool:
    return filename == MANIFEST_NAME


def is_segment(filename: str) -> bool:
    return filename.startswith(SEGMENT_PREFIX) and filename.endswith(SEGMENT_SUFFIX)
