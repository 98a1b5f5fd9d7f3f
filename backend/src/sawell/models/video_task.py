"""VideoTask entity - Generation job submitted to HeyGen."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class VideoStatus(str, Enum):
    """Video generation status as reported to clients."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> Optional["VideoStatus"]:
        """Return the matching status, or None for missing/unrecognized values."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def coerce(cls, value: object) -> "VideoStatus":
        """Like parse(), but unrecognized values become UNKNOWN."""
        return cls.parse(value) or cls.UNKNOWN


class VideoTask(SQLModel, table=True):
    """VideoTask tracks one avatar video generation job for a user.

    Rows are created by the submission pipeline. Status fields of a
    ``processing`` row are refreshed from HeyGen when the owner lists videos.
    """

    __tablename__ = "video_tasks"  # type: ignore[assignment]

    video_id: str = Field(primary_key=True, max_length=255)  # HeyGen video id
    uid: str = Field(index=True, max_length=128)
    status: str = Field(default=VideoStatus.PENDING.value, max_length=50)
    video_url: Optional[str] = Field(default=None)
    progress: Optional[int] = Field(default=None)

    # Generation parameters (immutable after creation)
    image_url: Optional[str] = Field(default=None)
    script: Optional[str] = Field(default=None)
    avatar_id: Optional[str] = Field(default=None, max_length=255)
    voice_id: Optional[str] = Field(default=None, max_length=255)

    # Set only on failure
    error_code: Optional[str] = Field(default=None, max_length=255)
    error_message: Optional[str] = Field(default=None)
    error_detail: Optional[str] = Field(default=None)

    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @property
    def status_value(self) -> VideoStatus:
        return VideoStatus.coerce(self.status)

    @property
    def is_refreshable(self) -> bool:
        """Only processing tasks are refreshed from upstream."""
        return self.status_value == VideoStatus.PROCESSING
