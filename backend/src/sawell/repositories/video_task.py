"""VideoTask repository for Sawell backend.

Provides data access methods for VideoTask entities.
"""

from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sawell.core.timezone import utcnow
from sawell.models.video_task import VideoStatus, VideoTask


@dataclass(frozen=True)
class VideoStatusFields:
    """The mutable status columns written back after a refresh."""

    status: str
    video_url: str | None
    progress: int | None
    error_code: str | None
    error_message: str | None
    error_detail: str | None


class VideoTaskRepository:
    """Repository for VideoTask entities.

    Listing deliberately avoids ORDER BY so the owner filter needs no
    composite index; callers sort in memory.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, task: VideoTask) -> VideoTask:
        """Persist new video task to database.

        Args:
            task: VideoTask entity to persist

        Returns:
            Persisted task
        """
        if task.created_at is None:
            task.created_at = utcnow()
        self.session.add(task)
        await self.session.flush()
        return task

    async def get_by_id(self, video_id: str) -> VideoTask | None:
        """Retrieve video task by HeyGen video id.

        Args:
            video_id: Video's unique identifier

        Returns:
            VideoTask if found, None otherwise
        """
        result = await self.session.execute(
            select(VideoTask).where(VideoTask.video_id == video_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list_by_owner(self, uid: str) -> list[VideoTask]:
        """Retrieve all video tasks owned by a user, unordered.

        Args:
            uid: Owner's user id

        Returns:
            List of tasks in storage order
        """
        result = await self.session.execute(
            select(VideoTask).where(VideoTask.uid == uid)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def apply_refresh(self, video_id: str, fields: VideoStatusFields) -> bool:
        """Overwrite the status columns of a processing task and stamp updated_at.

        Single-row UPDATE guarded on the stored status still being
        ``processing``. A task that moved to a terminal state after it was
        read is left untouched, so a stale refresh never rolls it back.

        Args:
            video_id: Task to update
            fields: Merged status values

        Returns:
            True if a row was updated, False if the task is missing or no
            longer processing
        """
        result = await self.session.execute(
            update(VideoTask)
            .where(VideoTask.video_id == video_id)  # type: ignore[arg-type]
            .where(VideoTask.status == VideoStatus.PROCESSING.value)  # type: ignore[arg-type]
            .values(
                status=fields.status,
                video_url=fields.video_url,
                progress=fields.progress,
                error_code=fields.error_code,
                error_message=fields.error_message,
                error_detail=fields.error_detail,
                updated_at=utcnow(),
            )
        )
        return result.rowcount > 0  # type: ignore[attr-defined]
