"""Repository layer for Sawell backend.

Provides data access abstractions for all domain entities. Each repository is
self-contained and takes the session it operates on.
"""

from sawell.repositories.credit import CreditAccountRepository, CreditTransactionRepository
from sawell.repositories.user import UserRepository
from sawell.repositories.video_task import VideoStatusFields, VideoTaskRepository

__all__ = [
    "CreditAccountRepository",
    "CreditTransactionRepository",
    "UserRepository",
    "VideoStatusFields",
    "VideoTaskRepository",
]
