# app/core/exceptions.py
from __future__ import annotations

"""
Luminav — Application Exceptions
================================
Two families live here:

1. **HTTP-facing** errors rooted at `AppException` (a FastAPI `HTTPException`
   that carries `code` and `details`). Routers raise these; the handlers in
   `app.core.exception_handlers` render them as problem+JSON.

2. **Pipeline** errors rooted at `MediaPipelineError`. These never leave the
   ingestion pipeline: they are caught at its boundary, logged, and turned
   into a terminal `error` progress event.

`TransientStoreError` sits between the two: it is raised by the durable-store
retry helper and rendered as 503 when it escapes a plain request handler.

Usage
-----
    raise ValidationError("Missing required fields", details={"fields": ["title"]})
    raise PersistenceConflict("A current film already exists. Delete it before adding a new one.")
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "ValidationError",
    "PayloadTooLarge",
    "UnsupportedMediaType",
    "NotFound",
    "PersistenceConflict",
    "StorageUnavailable",
    "TransientStoreError",
    "MediaPipelineError",
    "TranscodeFailure",
    "PublishFailure",
    "PipelineCancelled",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code (e.g., 400/404/409/413/415/503).
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Optional internal/typed error code. Defaults to `status_code`.
    details : dict | list | str | None
        Machine-readable details (e.g., missing field names).
    """

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: Optional[int] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.details: Optional[Any] = details

    def to_problem(self) -> Dict[str, Any]:
        """Extra members merged into the problem+JSON body."""
        body: Dict[str, Any] = {"code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


# ──────────────────────────────────────────────────────────────
# 🧾 Request-level errors
# ──────────────────────────────────────────────────────────────
class ValidationError(AppException):
    """Missing or malformed request fields; never reaches the pipeline."""

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, message=message, details=details)


class PayloadTooLarge(AppException):
    """Upload above the configured ceiling."""

    def __init__(self, *, limit_bytes: int) -> None:
        gib = limit_bytes / (1024 ** 3)
        human = f"{gib:g} GB" if gib >= 1 else f"{limit_bytes} bytes"
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            message=f"File too large. Maximum upload size is {human}.",
            details={"limit_bytes": limit_bytes},
        )


class UnsupportedMediaType(AppException):
    def __init__(self, message: str = "Only video files are allowed") -> None:
        super().__init__(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, message=message)


class NotFound(AppException):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, message=message)


class PersistenceConflict(AppException):
    """A declared uniqueness constraint rejected the write (409)."""

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, message=message, details=details)


class StorageUnavailable(AppException):
    def __init__(self, message: str = "Object storage is not configured") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, message=message)


# ──────────────────────────────────────────────────────────────
# 🗄️ Durable store
# ──────────────────────────────────────────────────────────────
class TransientStoreError(RuntimeError):
    """A connection-level failure survived the single transparent retry."""


# ──────────────────────────────────────────────────────────────
# 🎞️ Pipeline
# ──────────────────────────────────────────────────────────────
class MediaPipelineError(RuntimeError):
    """Base for stage-local failures; `stage` names where the run stopped."""

    stage: str = "pipeline"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage:
            self.stage = stage


class TranscodeFailure(MediaPipelineError):
    """Encoder error, timeout, or an output directory without segments."""

    stage = "converting"


class PublishFailure(MediaPipelineError):
    """At least one manifest/segment upload failed; nothing was recorded."""

    stage = "uploading"

    def __init__(self, message: str, *, uploaded_keys: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.uploaded_keys: list[str] = list(uploaded_keys or [])


class PipelineCancelled(MediaPipelineError):
    """The run's cancellation token was tripped at a suspension point."""
