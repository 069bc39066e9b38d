from __future__ import annotations

"""Videos repository.

Async SQLAlchemy access to the `videos` table. Every call goes through
`with_transient_retry`, so a dropped connection costs one transparent retry
before it surfaces as `TransientStoreError`.
"""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.video import Video
from app.db.session import with_transient_retry
from app.schemas.enums import VideoCategory

MAX_LIST_LIMIT = 100


class VideoRepositoryProtocol:
    async def create(
        self,
        *,
        category: VideoCategory,
        title: str,
        description: str,
        thumbnail_one: Optional[str],
        thumbnail_two: Optional[str],
        video_url: str,
    ) -> Video:
        raise NotImplementedError

    async def list(self, *, limit: Optional[int] = None) -> List[Video]:
        raise NotImplementedError

    async def get_by_id(self, video_id: int) -> Optional[Video]:
        raise NotImplementedError

    async def delete(self, video_id: int) -> bool:
        raise NotImplementedError


def validate_limit(limit: Optional[int]) -> Optional[int]:
    """Positive int up to MAX_LIST_LIMIT, or None for "no limit"."""
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError("limit must be a positive integer")
    if limit > MAX_LIST_LIMIT:
        raise ValueError(f"limit must be <= {MAX_LIST_LIMIT}")
    return limit


class SqlVideoRepository(VideoRepositoryProtocol):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        category: VideoCategory,
        title: str,
        description: str,
        thumbnail_one: Optional[str],
        thumbnail_two: Optional[str],
        video_url: str,
    ) -> Video:
        """Unconditional insert; identity is generated by the database."""

        async def _op(s: AsyncSession) -> Video:
            video = Video(
                category=VideoCategory(category),
                title=title,
                description=description,
                thumbnail_one=thumbnail_one,
                thumbnail_two=thumbnail_two,
                video_url=video_url,
            )
            s.add(video)
            await s.commit()
            await s.refresh(video)
            return video

        return await with_transient_retry(self.session, _op, label="videos.create")

    async def list(self, *, limit: Optional[int] = None) -> List[Video]:
        """Newest first."""
        limit = validate_limit(limit)

        async def _op(s: AsyncSession) -> List[Video]:
            stmt = select(Video).order_by(Video.created_at.desc(), Video.id.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            return list((await s.execute(stmt)).scalars().all())

        return await with_transient_retry(self.session, _op, label="videos.list")

    async def get_by_id(self, video_id: int) -> Optional[Video]:
        async def _op(s: AsyncSession) -> Optional[Video]:
            return await s.get(Video, video_id)

        return await with_transient_retry(self.session, _op, label="videos.get")

    async def delete(self, video_id: int) -> bool:
        """Hard delete of the row only; False when nothing existed."""

        async def _op(s: AsyncSession) -> bool:
            result = await s.execute(delete(Video).where(Video.id == video_id))
            await s.commit()
            return (result.rowcount or 0) > 0

        return await with_transient_retry(self.session, _op, label="videos.delete")


__all__ = [
    "MAX_LIST_LIMIT",
    "VideoRepositoryProtocol",
    "SqlVideoRepository",
    "validate_limit",
]
