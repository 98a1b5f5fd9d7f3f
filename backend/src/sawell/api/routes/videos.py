"""Video list API endpoint.

- GET /api/videos - List the caller's generated videos, newest first, with
  in-progress videos refreshed from HeyGen (best effort, bounded latency)
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from sawell.api.dependencies import get_current_uid, get_reconciler
from sawell.core.timezone import isoformat_utc
from sawell.services.reconciliation import VideoReconciler, VideoView

logger = structlog.get_logger()
router = APIRouter(prefix="/api/videos", tags=["videos"])


class VideoDTO(BaseModel):
    """Data Transfer Object for one video in API responses."""

    video_id: str
    video_url: str | None = None
    status: str = Field(
        ...,
        description="Generation status (pending, processing, completed, failed, unknown)",
    )
    progress: int | None = Field(default=None, description="Percent complete while processing")
    image_url: str | None = None
    script: str | None = None
    avatar_id: str | None = None
    voice_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_detail: str | None = None
    created_at: str | None = Field(default=None, description="ISO-8601 UTC timestamp")
    updated_at: str | None = Field(default=None, description="ISO-8601 UTC timestamp")

    @classmethod
    def from_view(cls, view: VideoView) -> "VideoDTO":
        return cls(
            video_id=view.video_id,
            video_url=view.video_url,
            status=view.status,
            progress=view.progress,
            image_url=view.image_url,
            script=view.script,
            avatar_id=view.avatar_id,
            voice_id=view.voice_id,
            error_code=view.error_code,
            error_message=view.error_message,
            error_detail=view.error_detail,
            created_at=isoformat_utc(view.created_at),
            updated_at=isoformat_utc(view.updated_at),
        )


class VideosResponse(BaseModel):
    """Response model for the video list."""

    success: bool
    videos: list[VideoDTO]
    count: int


@router.get("", response_model=VideosResponse)
async def list_user_videos(
    uid: str = Depends(get_current_uid),
    reconciler: VideoReconciler = Depends(get_reconciler),
) -> VideosResponse:
    """List the caller's videos.

    Videos still processing are refreshed from HeyGen; a slow or failing
    HeyGen never fails the request, those videos are served from storage.

    Raises:
        HTTPException 500: The stored videos could not be loaded
    """
    try:
        result = await reconciler.list_videos(uid)
    except Exception as e:
        logger.error(
            "videos.list.failed",
            uid=uid,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get user videos: {str(e)}",
        )

    return VideosResponse(
        success=True,
        videos=[VideoDTO.from_view(view) for view in result.videos],
        count=result.count,
    )
