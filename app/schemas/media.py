from __future__ import annotations

"""
Luminav • Media Schemas
=======================

Purpose
-------
- Request bodies for the videos and current-film endpoints.
- Public views of stored rows (camelCase on the wire).
- Typed progress events pushed over the upload stream.

Design
------
- Request bodies declare every field optional so that the routers can report
  *all* missing fields at once as a 400 (instead of FastAPI's per-field 422).
- Progress events are a tagged union on `type`; `to_wire()` drops unset
  members so each frame only carries what its variant defines.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.enums import EventType, ProgressStage, VideoCategory


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# === Request bodies ========================================================

class VideoCreateIn(_CamelModel):
    """Metadata for a prefix that is already published in object storage."""
    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_one: Optional[str] = None
    thumbnail_two: Optional[str] = None


class CurrentFilmCreateIn(_CamelModel):
    """`teaser_url` normally comes from a prior teaser upload run."""
    title: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    teaser_url: Optional[str] = None


def missing_fields(body: BaseModel, required: List[str]) -> List[str]:
    """camelCase names of required fields that are absent or blank."""
    out: List[str] = []
    for name in required:
        value = getattr(body, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            out.append(to_camel(name))
    return out


# === Public views ==========================================================

class VideoOut(_CamelModel):
    id: int
    category: VideoCategory
    title: str
    description: str
    thumbnails: List[Optional[str]] = Field(default_factory=list)
    video_url: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, video: Any) -> "VideoOut":
        return cls(
            id=video.id,
            category=video.category,
            title=video.title,
            description=video.description,
            thumbnails=[video.thumbnail_one, video.thumbnail_two],
            video_url=video.video_url,
            created_at=video.created_at,
        )


class CurrentFilmOut(_CamelModel):
    id: int
    title: str
    description: str
    video_url: str
    teaser_url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# === Progress stream =======================================================

class ProgressEvent(_CamelModel):
    type: Literal[EventType.PROGRESS] = EventType.PROGRESS
    stage: ProgressStage
    percent: int = Field(ge=0, le=100)


class CompleteEvent(_CamelModel):
    type: Literal[EventType.COMPLETE] = EventType.COMPLETE
    message: str
    data: Optional[Dict[str, Any]] = None
    teaser_url: Optional[str] = None


class ErrorEvent(_CamelModel):
    type: Literal[EventType.ERROR] = EventType.ERROR
    message: str


PipelineEvent = Union[ProgressEvent, CompleteEvent, ErrorEvent]


def to_wire(event: PipelineEvent) -> Dict[str, Any]:
    """JSON-ready dict (camelCase, unset members dropped)."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def is_terminal(event: PipelineEvent) -> bool:
    return event.type in (EventType.COMPLETE, EventType.ERROR)


__all__ = [
    "VideoCreateIn",
    "CurrentFilmCreateIn",
    "missing_fields",
    "VideoOut",
    "CurrentFilmOut",
    "ProgressEvent",
    "CompleteEvent",
    "ErrorEvent",
    "PipelineEvent",
    "to_wire",
    "is_terminal",
]
