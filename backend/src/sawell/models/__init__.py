"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from sawell.models.credit import CreditAccount, CreditKind, CreditTransaction
from sawell.models.user import User
from sawell.models.video_task import VideoStatus, VideoTask

__all__ = [
    "CreditAccount",
    "CreditKind",
    "CreditTransaction",
    "User",
    "VideoStatus",
    "VideoTask",
]
