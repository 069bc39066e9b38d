# app/db/base.py
"""
Luminav — SQLAlchemy Base registry
==================================

Import all ORM models so their tables are registered on `Base.metadata`
before `create_all` runs at startup (and in the test fixtures).

Tip: Keep this file import-only; no runtime logic.
"""

from app.db.base_class import Base

# ───────────────────────────────────────────────────────────────
# Catalogue + featured film
# ───────────────────────────────────────────────────────────────
from app.db.models.video import Video
from app.db.models.current_film import CurrentFilm

__all__ = [
    "Base",
    "Video",
    "CurrentFilm",
]
