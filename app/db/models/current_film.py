from __future__ import annotations

"""
⭐ Luminav — CurrentFilm (singleton featured film)
==================================================

At most one row may exist. The invariant lives in the database: every row
carries the same `lock_key` value and that column is UNIQUE, so a second
concurrent INSERT fails at commit time regardless of what the application
believed about the table beforehand.

Clearing the slot is a hard DELETE; there is no soft-delete column.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String, Text, UniqueConstraint, text

from app.db.base_class import Base, PKMixin, TimestampMixin

# Single allowed value of `lock_key`.
SINGLETON_LOCK_KEY = 1


# ──────────────────────────────────────────────────────────────
# 📦 Model: CurrentFilm
# ──────────────────────────────────────────────────────────────
class CurrentFilm(PKMixin, TimestampMixin, Base):
    """The one featured film shown on the landing page."""

    __tablename__ = "current_film"

    lock_key = Column(
        Integer,
        nullable=False,
        default=SINGLETON_LOCK_KEY,
        server_default=text(str(SINGLETON_LOCK_KEY)),
        doc="Fixed uniqueness key; makes the table hold zero or one row.",
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    video_url = Column(String(2048), nullable=False)
    teaser_url = Column(String(2048), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("lock_key", name="uq_current_film_lock_key"),
        CheckConstraint(f"lock_key = {SINGLETON_LOCK_KEY}", name="lock_key_fixed"),
    )


__all__ = ["CurrentFilm", "SINGLETON_LOCK_KEY"]
