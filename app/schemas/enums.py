from __future__ import annotations

"""
Central enum definitions used across Luminav.

Design notes
------------
• All enums subclass `str, PyEnum` for JSON-friendly serialization.
• VALUE STRINGS are **stable** once deployed (stored rows and S3 prefixes
  depend on them).
"""

from enum import Enum as PyEnum


# ──────────────────────────────────────────────────────────────
# Catalogue
# ──────────────────────────────────────────────────────────────
class VideoCategory(str, PyEnum):
    """Top-level catalogue section; doubles as the first S3 key segment."""
    AD_FILMS = "ad_films"
    SHORT_FILMS = "short_films"


# ──────────────────────────────────────────────────────────────
# Progress stream
# ──────────────────────────────────────────────────────────────
class ProgressStage(str, PyEnum):
    """Pipeline stage reported by `progress` events, in emission order."""
    CONVERTING = "converting"
    UPLOADING = "uploading"
    SAVING = "saving"


class EventType(str, PyEnum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineKind(str, PyEnum):
    """Which ingestion flavour is running (label for logs/metrics)."""
    VIDEO = "video"
    TEASER = "teaser"


# ──────────────────────────────────────────────────────────────
# Singleton guard outcome
# ──────────────────────────────────────────────────────────────
class InsertOutcome(str, PyEnum):
    """Typed non-success result of a guarded insert."""
    ALREADY_EXISTS = "ALREADY_EXISTS"


__all__ = [
    "VideoCategory",
    "ProgressStage",
    "EventType",
    "PipelineKind",
    "InsertOutcome",
]
