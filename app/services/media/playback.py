from __future__ import annotations

"""
Luminav — Playback URL Issuer
=============================

Maps (category, slug, filename) to a short-lived presigned GET for the
matching object. Pure with respect to the database: nothing is looked up or
recorded, and every call signs a fresh URL.

The response content type is negotiated from the file extension (playlist for
`.manifest`/`.m3u8`, transport stream for `.ts`, binary otherwise) and the
disposition is always `inline` so players render instead of downloading.
"""

import re
from dataclasses import dataclass

from app.core.exceptions import ValidationError
from app.core.metrics import inc_presign
from app.core.storage import TEASER_PREFIX, content_type_for
from app.utils.aws import S3Client, S3StorageError

# Fixed signed-URL lifetime
PLAYBACK_URL_TTL_SECONDS = 600

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._\-]+$")


@dataclass(frozen=True)
class SignedPlayback:
    url: str
    key: str
    content_type: str
    expires_in: int = PLAYBACK_URL_TTL_SECONDS


def _path_part(value: str, name: str) -> str:
    v = (value or "").strip()
    if not v or v in (".", "..") or not _SEGMENT_RE.fullmatch(v):
        raise ValidationError(f"Invalid {name}", details={"field": name})
    return v


class PlaybackUrlIssuer:
    def __init__(self, s3: S3Client, *, ttl_seconds: int = PLAYBACK_URL_TTL_SECONDS) -> None:
        self.s3 = s3
        self.ttl_seconds = ttl_seconds

    def sign_key(self, key: str) -> SignedPlayback:
        content_type = content_type_for(key)
        try:
            url = self.s3.presigned_get(
                key,
                expires_in=self.ttl_seconds,
                response_content_type=content_type,
                response_content_disposition="inline",
            )
        except S3StorageError:
            inc_presign("error")
            raise
        inc_presign("ok")
        return SignedPlayback(url=url, key=key, content_type=content_type, expires_in=self.ttl_seconds)

    def issue(self, category: str, slug: str, filename: str) -> SignedPlayback:
        key = "/".join(
            (
                _path_part(category, "category"),
                _path_part(slug, "slug"),
                _path_part(filename, "filename"),
            )
        )
        return self.sign_key(key)

    def issue_teaser(self, filename: str) -> SignedPlayback:
        return self.sign_key(f"{TEASER_PREFIX}/{_path_part(filename, 'filename')}")


__all__ = ["PlaybackUrlIssuer", "SignedPlayback", "PLAYBACK_URL_TTL_SECONDS"]
