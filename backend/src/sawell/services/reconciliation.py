"""Video list reconciliation against HeyGen.

Listing a user's videos refreshes every ``processing`` task from HeyGen
before responding, without letting HeyGen latency or failures block or fail
the request:

1. Load the owner's tasks (unordered) - a failure here is fatal to the call.
2. Split into refreshable (``processing``) and stable tasks. Without a
   configured status client everything is stable.
3. Query HeyGen for all refreshable tasks concurrently, each call bounded by
   the per-item timeout, the whole fan-out bounded by the global budget.
   Queries still running when the budget expires are cancelled and the
   stored data is served for those tasks.
4. Merge field by field: HeyGen value, else stored value, else null.
5. Persist each merged task in a detached background task; the response
   never waits on it and a failed write is only logged.
6. Sort newest first by creation time (missing timestamps last) and cap
   the list.

Write-backs only touch rows still stored as ``processing``. A task that
reached a terminal state after it was loaded keeps that state; refreshes
that race on a processing task resolve as last write wins.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

import structlog

from sawell.core.config import Settings
from sawell.models.video_task import VideoStatus, VideoTask
from sawell.repositories.video_task import VideoStatusFields
from sawell.services.exceptions import UpstreamStatusError
from sawell.services.heygen.client import HeyGenClient, UpstreamVideoStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VideoView:
    """Client-facing view of one video task."""

    video_id: str
    video_url: str | None
    status: str
    progress: int | None
    image_url: str | None
    script: str | None
    avatar_id: str | None
    voice_id: str | None
    error_code: str | None
    error_message: str | None
    error_detail: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_task(cls, task: VideoTask, fields: VideoStatusFields | None = None) -> "VideoView":
        """Build a view from a stored task, optionally overlaying merged status fields."""
        if fields is None:
            fields = stored_status_fields(task)
        return cls(
            video_id=task.video_id,
            video_url=fields.video_url,
            status=fields.status,
            progress=fields.progress,
            image_url=task.image_url or None,
            script=task.script or None,
            avatar_id=task.avatar_id or None,
            voice_id=task.voice_id or None,
            error_code=fields.error_code,
            error_message=fields.error_message,
            error_detail=fields.error_detail,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


@dataclass(frozen=True)
class ReconcileResult:
    videos: list[VideoView]
    count: int


def _first_present(*values: Any) -> Any:
    """First value that is neither None nor an empty string, else None."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def stored_status_fields(task: VideoTask) -> VideoStatusFields:
    return VideoStatusFields(
        status=task.status_value.value,
        video_url=_first_present(task.video_url),
        progress=task.progress,
        error_code=_first_present(task.error_code),
        error_message=_first_present(task.error_message),
        error_detail=_first_present(task.error_detail),
    )


def merge_status(task: VideoTask, upstream: UpstreamVideoStatus) -> VideoStatusFields:
    """Overlay HeyGen values on a stored task, field by field.

    An upstream status outside the known set counts as absent, so the stored
    status is kept rather than degrading the task to ``unknown``.
    """
    upstream_status = VideoStatus.parse(upstream.status)
    return VideoStatusFields(
        status=(upstream_status or task.status_value).value,
        video_url=_first_present(upstream.video_url, task.video_url),
        progress=_first_present(upstream.progress, task.progress),
        error_code=_first_present(upstream.error_code, task.error_code),
        error_message=_first_present(upstream.error_message, task.error_message),
        error_detail=_first_present(upstream.error_detail, task.error_detail),
    )


def sort_newest_first(views: list[VideoView]) -> list[VideoView]:
    """Sort by created_at descending; views without a timestamp sort last.

    Python's sort is stable, so ties keep their input order.
    """
    return sorted(views, key=lambda view: view.created_at or datetime.min, reverse=True)


class VideoReconciler:
    """Serves a user's video list merged with fresh HeyGen status.

    Holds no per-request state; one instance is shared by the process. The
    only mutable state is the set of in-flight write-back tasks, kept so they
    are not garbage collected and can be drained at shutdown.
    """

    def __init__(
        self,
        uow_factory: Callable[[], Awaitable[Any]],
        status_client: HeyGenClient | None,
        *,
        item_timeout_seconds: float = 3.0,
        budget_seconds: float = 5.0,
        write_timeout_seconds: float = 10.0,
        limit: int = 100,
    ):
        """Initialize the reconciler.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            status_client: HeyGen client, or None when HeyGen is not configured
            item_timeout_seconds: Timeout for each HeyGen status call
            budget_seconds: Total time to wait for the fan-out
            write_timeout_seconds: Maximum lifetime of one background write-back
            limit: Maximum number of videos returned
        """
        self.uow_factory = uow_factory
        self.status_client = status_client
        self.item_timeout_seconds = item_timeout_seconds
        self.budget_seconds = budget_seconds
        self.write_timeout_seconds = write_timeout_seconds
        self.limit = limit
        self._pending_writes: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        uow_factory: Callable[[], Awaitable[Any]],
        status_client: HeyGenClient | None,
        settings: Settings,
    ) -> "VideoReconciler":
        return cls(
            uow_factory,
            status_client,
            item_timeout_seconds=settings.reconcile_item_timeout_seconds,
            budget_seconds=settings.reconcile_budget_seconds,
            write_timeout_seconds=settings.reconcile_write_timeout_seconds,
            limit=settings.video_list_limit,
        )

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    def partition(self, tasks: list[VideoTask]) -> tuple[list[VideoTask], list[VideoTask]]:
        """Split tasks into (refreshable, stable)."""
        if self.status_client is None:
            return [], list(tasks)
        refreshable = [task for task in tasks if task.is_refreshable]
        stable = [task for task in tasks if not task.is_refreshable]
        return refreshable, stable

    async def list_videos(self, uid: str) -> ReconcileResult:
        """Return the user's videos, newest first, with processing ones refreshed.

        Args:
            uid: Owner's user id

        Returns:
            ReconcileResult with at most ``limit`` videos

        Raises:
            Exception: Any failure loading the stored tasks (fatal to the call)
        """
        start_time = time.monotonic()

        async with await self.uow_factory() as uow:
            tasks = await uow.video_tasks.list_by_owner(uid)

        refreshable, stable = self.partition(tasks)
        if refreshable:
            logger.info("videos.refresh.started", uid=uid, processing=len(refreshable))

        updates = await self._fetch_updates(refreshable)

        views: list[VideoView] = []
        for task in refreshable:
            upstream = updates.get(task.video_id)
            if upstream is None:
                views.append(VideoView.from_task(task))
                continue
            fields = merge_status(task, upstream)
            self._schedule_write_back(task.video_id, fields)
            views.append(VideoView.from_task(task, fields))

        views.extend(VideoView.from_task(task) for task in stable)
        videos = sort_newest_first(views)[: self.limit]

        logger.info(
            "videos.list.completed",
            uid=uid,
            count=len(videos),
            total=len(tasks),
            refreshed=len(updates),
            duration_seconds=round(time.monotonic() - start_time, 3),
        )
        return ReconcileResult(videos=videos, count=len(videos))

    async def _fetch_one(self, task: VideoTask) -> UpstreamVideoStatus | None:
        """Query HeyGen for one task; any failure yields None."""
        if self.status_client is None:
            return None
        try:
            return await asyncio.wait_for(
                self.status_client.get_video_status(task.video_id),
                timeout=self.item_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "video.refresh.timeout",
                video_id=task.video_id,
                timeout_seconds=self.item_timeout_seconds,
            )
        except UpstreamStatusError as e:
            logger.warning("video.refresh.failed", video_id=task.video_id, error=str(e))
        except Exception as e:
            logger.warning(
                "video.refresh.failed",
                video_id=task.video_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        return None

    async def _fetch_updates(self, refreshable: list[VideoTask]) -> dict[str, UpstreamVideoStatus]:
        """Fan out status queries and collect whatever finishes within the budget."""
        if not refreshable:
            return {}

        in_flight = {
            asyncio.create_task(self._fetch_one(task)): task.video_id for task in refreshable
        }
        try:
            done, pending = await asyncio.wait(set(in_flight), timeout=self.budget_seconds)
        finally:
            for fetch in in_flight:
                if not fetch.done():
                    fetch.cancel()

        if pending:
            logger.warning(
                "videos.refresh.budget_exhausted",
                budget_seconds=self.budget_seconds,
                abandoned=len(pending),
            )

        updates: dict[str, UpstreamVideoStatus] = {}
        for fetch in done:
            result = fetch.result()
            if result is not None:
                updates[in_flight[fetch]] = result
        return updates

    def _schedule_write_back(self, video_id: str, fields: VideoStatusFields) -> None:
        write = asyncio.create_task(self._write_back(video_id, fields))
        self._pending_writes.add(write)
        write.add_done_callback(self._pending_writes.discard)

    async def _persist(self, video_id: str, fields: VideoStatusFields) -> bool:
        async with await self.uow_factory() as uow:
            return await uow.video_tasks.apply_refresh(video_id, fields)

    async def _write_back(self, video_id: str, fields: VideoStatusFields) -> None:
        """Persist merged fields; failures are logged and never re-raised."""
        try:
            written = await asyncio.wait_for(
                self._persist(video_id, fields), timeout=self.write_timeout_seconds
            )
            if written:
                logger.debug(
                    "video.write_back.succeeded", video_id=video_id, status=fields.status
                )
            else:
                logger.info("video.write_back.skipped", video_id=video_id, reason="not_processing")
        except asyncio.TimeoutError:
            logger.warning(
                "video.write_back.timeout",
                video_id=video_id,
                timeout_seconds=self.write_timeout_seconds,
            )
        except Exception as e:
            logger.warning(
                "video.write_back.failed",
                video_id=video_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight write-backs (shutdown and tests)."""
        if self._pending_writes:
            await asyncio.wait(set(self._pending_writes), timeout=timeout)
