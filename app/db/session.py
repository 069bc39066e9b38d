# app/db/session.py
from __future__ import annotations

"""
Luminav — Database Engine & Session Dependencies

- Async engine/session for FastAPI, the ingestion pipeline and tests.
- `with_transient_retry` gives every durable-store call one transparent retry
  after a connection-level failure (reset, dropped socket, invalidated pool
  connection). A second failure surfaces as `TransientStoreError`.
"""

from typing import AsyncGenerator, Awaitable, Callable, Dict, Any, TypeVar
import logging

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from app.core.config import settings
from app.core.exceptions import TransientStoreError
from app.core.metrics import inc_db_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ───────────────────────────────────────────────────────────────
# Engine options
# ───────────────────────────────────────────────────────────────

ASYNC_DATABASE_URL: str = settings.ASYNC_DATABASE_URL

# Pool knobs (server databases only; SQLite picks its own pool class)
_POOL_PRE_PING = True
_POOL_RECYCLE = 1800
_POOL_TIMEOUT = 30
_POOL_SIZE = 10
_MAX_OVERFLOW = 20

def _engine_kwargs(url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": settings.DB_ECHO, "future": True}
    if url.startswith("sqlite"):
        return kwargs
    kwargs.update(
        pool_pre_ping=_POOL_PRE_PING,
        pool_recycle=_POOL_RECYCLE,
        pool_size=_POOL_SIZE,
        max_overflow=_MAX_OVERFLOW,
        pool_timeout=_POOL_TIMEOUT,
    )
    return kwargs

# ───────────────────────────────────────────────────────────────
# ⚡ ASYNC ENGINE — used by app, pipeline & tests
# ───────────────────────────────────────────────────────────────

async_engine: AsyncEngine = create_async_engine(ASYNC_DATABASE_URL, **_engine_kwargs(ASYNC_DATABASE_URL))

async_session_maker = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async SQLAlchemy session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

async def db_healthcheck() -> bool:
    """Quick SELECT 1 to verify DB connectivity (used by /readyz)."""
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("DB healthcheck failed")
        return False

async def init_models() -> None:
    """Create missing tables (`DB_CREATE_ALL=true`; no migration tooling)."""
    from app.db.base import Base  # registers every model

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def dispose_engine() -> None:
    await async_engine.dispose()

# ───────────────────────────────────────────────────────────────
# 🔁 Transient failure retry
# ───────────────────────────────────────────────────────────────

def is_transient_db_error(exc: BaseException) -> bool:
    """Connection-level failures only; constraint and SQL errors are not retried."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(getattr(exc, "connection_invalidated", False))

async def with_transient_retry(
    session: AsyncSession,
    op: Callable[[AsyncSession], Awaitable[T]],
    *,
    label: str = "db",
) -> T:
    """
    Run `op(session)`; on a connection-level failure roll back and run it once more.

    `op` must be safe to re-run from scratch (each repository call is a single
    statement or a single short transaction).

    Raises
    ------
    TransientStoreError
        When the retry fails with a connection-level error as well.
    """
    try:
        return await op(session)
    except Exception as first:
        if not is_transient_db_error(first):
            raise
        logger.warning("Transient DB failure during %s; retrying once: %s", label, first)
        await session.rollback()

    try:
        result = await op(session)
    except Exception as second:
        if not is_transient_db_error(second):
            raise
        inc_db_retry("failed")
        await session.rollback()
        raise TransientStoreError(f"{label}: database unavailable after retry") from second
    inc_db_retry("recovered")
    return result

__all__ = [
    "async_engine",
    "async_session_maker",
    "get_async_db",
    "db_healthcheck",
    "init_models",
    "dispose_engine",
    "is_transient_db_error",
    "with_transient_retry",
]
