from __future__ import annotations

"""
🎬 Luminav — Video (published catalogue asset)
==============================================

Durable pointer to a segmented stream that already lives in object storage
under `{category}/{slug}/`. A row is only ever written after every segment
and the manifest of its prefix have been uploaded.

Design highlights
-----------------
• Identity is a surrogate key, independent of the storage prefix: two
  ingestion runs with the same title share a prefix but produce two rows.
• `video_url` is always `{prefix}/output.manifest` rendered as an object URL.
• Deleting a row never touches object storage.
"""

from sqlalchemy import CheckConstraint, Column, Enum as SAEnum, Index, String, Text

from app.db.base_class import Base, PKMixin, TimestampMixin
from app.schemas.enums import VideoCategory


# ──────────────────────────────────────────────────────────────
# 📦 Model: Video
# ──────────────────────────────────────────────────────────────
class Video(PKMixin, TimestampMixin, Base):
    """Published video asset (ad film or short film)."""

    __tablename__ = "videos"

    # ── Catalogue ────────────────────────────────────────────
    category = Column(
        SAEnum(
            VideoCategory,
            name="video_category",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
        doc="Catalogue section; also the first key segment in storage.",
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    # ── Artwork / Stream ─────────────────────────────────────
    thumbnail_one = Column(String(2048), nullable=True, doc="First thumbnail reference (URL or key).")
    thumbnail_two = Column(String(2048), nullable=True, doc="Second thumbnail reference (URL or key).")
    video_url = Column(String(2048), nullable=False, doc="Object URL of the HLS manifest.")

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint("length(trim(title)) > 0", name="title_not_blank"),
        Index("ix_videos_category_created_at", "category", "created_at"),
    )


__all__ = ["Video"]
