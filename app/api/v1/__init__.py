"""Versioned API (v1).

The aggregated router lives in `app.api.v1.routers`:

    from app.api.v1.routers import router as api_v1_router
"""

# Keep `routers` unshadowed: tests monkeypatch dotted paths under it.

__all__ = []
