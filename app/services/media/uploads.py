from __future__ import annotations

"""
Upload gatekeeping for the ingestion endpoints.

Runs before a workspace exists: a non-video MIME type is a 415 and a payload
over `MAX_VIDEO_UPLOAD_BYTES` is a 413. Size is taken from the parsed part
when the multipart parser recorded it, otherwise from the request's declared
`Content-Length` (minus a small allowance for multipart framing and the text
fields); staging enforces the same ceiling on the bytes actually copied.
"""

import re
from pathlib import PurePath
from typing import Any, Optional

from app.core.config import settings
from app.core.exceptions import PayloadTooLarge, UnsupportedMediaType, ValidationError

# Multipart boundaries, part headers and the small text fields
_FORM_OVERHEAD_BYTES = 64 * 1024
_SUFFIX_RE = re.compile(r"^\.[a-z0-9]{1,8}$")


def validate_video_upload(
    upload: Any,
    *,
    content_length: Optional[str | int] = None,
    limit_bytes: Optional[int] = None,
    field: str = "video",
) -> None:
    if upload is None or not getattr(upload, "filename", None):
        raise ValidationError(f"No {field} file uploaded", details={"fields": [field]})

    content_type = (getattr(upload, "content_type", None) or "").lower()
    if not content_type.startswith("video/"):
        raise UnsupportedMediaType()

    limit = limit_bytes if limit_bytes is not None else settings.MAX_VIDEO_UPLOAD_BYTES
    size = getattr(upload, "size", None)
    if size is not None and int(size) > limit:
        raise PayloadTooLarge(limit_bytes=limit)
    if content_length is not None:
        try:
            declared = int(content_length)
        except (TypeError, ValueError):
            declared = None
        if declared is not None and declared > limit + _FORM_OVERHEAD_BYTES:
            raise PayloadTooLarge(limit_bytes=limit)


def safe_suffix(filename: Optional[str]) -> str:
    """Lower-cased extension of the client filename when it is plain, else ''."""
    suffix = PurePath(filename or "").suffix.lower()
    return suffix if _SUFFIX_RE.fullmatch(suffix) else ""


__all__ = ["validate_video_upload", "safe_suffix"]
