"""
🧭✨ Luminav • API v1 Router Aggregator
======================================

Exports the **combined `router`** (ready to include) and each **individual
sub-router** so callers can mount them as needed.

Quick usage
-----------
    from app.api.v1.routers import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")

Or with the factory:

    from app.api.v1.routers import build_v1_router
    app.include_router(build_v1_router(), prefix="/api/v1")
"""

from fastapi import APIRouter

from .videos import router as videos_router
from .current import router as current_router


# ─────────────────────────────────────────────────────────────────────────────
# 🧩 Factory: build a combined v1 router with stable path layout
# ─────────────────────────────────────────────────────────────────────────────
def build_v1_router() -> APIRouter:
    """
    Compose the API v1 surface into a single `APIRouter`.

    Returns
    -------
    fastapi.APIRouter
        A router that includes:
          • Video catalogue, ingestion and playback (`/videos...`)
          • Current featured film and its teaser (`/current...`)
    """
    r = APIRouter()
    r.include_router(videos_router)
    r.include_router(current_router)
    return r


router = build_v1_router()


__all__ = [
    "router",
    "build_v1_router",
    "videos_router",
    "current_router",
]
