"""
Repository package for data access layers.

Both repositories wrap one `AsyncSession` and route every statement through
`app.db.session.with_transient_retry`. Routers build them per request from
`get_async_db`; the ingestion pipeline builds them from its own session.
"""

from .current_film import SqlCurrentFilmRepository
from .videos import SqlVideoRepository

__all__ = [
    "SqlCurrentFilmRepository",
    "SqlVideoRepository",
]
