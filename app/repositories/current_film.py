from __future__ import annotations

"""Current-film repository (singleton guard).

The table can hold at most one row: every insert writes the same `lock_key`
and the column is UNIQUE. `create` never checks for an existing row first; it
inserts and lets the constraint decide, translating a uniqueness violation
into `InsertOutcome.ALREADY_EXISTS`.
"""

from typing import Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.current_film import CurrentFilm, SINGLETON_LOCK_KEY
from app.db.session import with_transient_retry
from app.schemas.enums import InsertOutcome

# SQLSTATE unique_violation (PostgreSQL and the SQL standard)
_UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """Storage-agnostic check for a declared uniqueness constraint firing."""
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        if getattr(orig, attr, None) == _UNIQUE_VIOLATION:
            return True
    text = str(orig if orig is not None else exc)
    return "UNIQUE constraint failed" in text or "duplicate key" in text.lower()


class CurrentFilmRepositoryProtocol:
    async def get(self) -> Optional[CurrentFilm]:
        raise NotImplementedError

    async def create(
        self, *, title: str, description: str, video_url: str, teaser_url: str
    ) -> Union[CurrentFilm, InsertOutcome]:
        raise NotImplementedError

    async def delete(self) -> bool:
        raise NotImplementedError


class SqlCurrentFilmRepository(CurrentFilmRepositoryProtocol):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[CurrentFilm]:
        async def _op(s: AsyncSession) -> Optional[CurrentFilm]:
            stmt = select(CurrentFilm).where(CurrentFilm.lock_key == SINGLETON_LOCK_KEY).limit(1)
            return (await s.execute(stmt)).scalars().first()

        return await with_transient_retry(self.session, _op, label="current_film.get")

    async def create(
        self, *, title: str, description: str, video_url: str, teaser_url: str
    ) -> Union[CurrentFilm, InsertOutcome]:
        """Insert the one allowed row, or report that the slot is taken."""

        async def _op(s: AsyncSession) -> CurrentFilm:
            film = CurrentFilm(
                lock_key=SINGLETON_LOCK_KEY,
                title=title,
                description=description,
                video_url=video_url,
                teaser_url=teaser_url,
            )
            s.add(film)
            await s.commit()
            await s.refresh(film)
            return film

        try:
            return await with_transient_retry(self.session, _op, label="current_film.create")
        except IntegrityError as e:
            await self.session.rollback()
            if is_unique_violation(e):
                return InsertOutcome.ALREADY_EXISTS
            raise

    async def delete(self) -> bool:
        """Clear the slot; False when it was already empty."""

        async def _op(s: AsyncSession) -> bool:
            result = await s.execute(delete(CurrentFilm).where(CurrentFilm.lock_key == SINGLETON_LOCK_KEY))
            await s.commit()
            return (result.rowcount or 0) > 0

        return await with_transient_retry(self.session, _op, label="current_film.delete")


__all__ = [
    "CurrentFilmRepositoryProtocol",
    "SqlCurrentFilmRepository",
    "is_unique_violation",
]
