"""User repository for Sawell backend.

Provides data access methods for User profiles and their entitlement sets.
"""

from typing import Any, AsyncIterator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sawell.core.timezone import utcnow
from sawell.models.user import User


class UserRepository:
    """Repository for User entities.

    Methods:
    - get_by_uid: Retrieve user by uid
    - add: Persist new user
    - iter_uids: Stream every uid (full population scan)
    - upsert_profile: Create or update profile fields
    - set_entitlement: Store one product's entitlement record
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_uid(self, uid: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.uid == uid)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        self.session.add(user)
        await self.session.flush()
        return user

    async def iter_uids(self, batch_size: int = 500) -> AsyncIterator[str]:
        """Yield every user uid in ascending order, paging by keyset.

        Args:
            batch_size: Rows fetched per query

        Yields:
            User uids
        """
        last_uid: str | None = None
        while True:
            stmt = select(User.uid).order_by(User.uid).limit(batch_size)  # type: ignore[arg-type]
            if last_uid is not None:
                stmt = stmt.where(User.uid > last_uid)  # type: ignore[arg-type]
            result = await self.session.execute(stmt)
            uids = list(result.scalars().all())
            if not uids:
                return
            for uid in uids:
                yield uid
            last_uid = uids[-1]

    async def upsert_profile(
        self,
        uid: str,
        email: str = "",
        display_name: str = "",
        photo_url: str = "",
    ) -> User:
        """Create or update a user's profile fields.

        Entitlements and role flags are left untouched on update.

        Returns:
            User entity (newly created or updated)
        """
        existing = await self.get_by_uid(uid)
        if existing:
            existing.email = email
            existing.display_name = display_name
            existing.photo_url = photo_url
            existing.updated_at = utcnow()
            self.session.add(existing)
            await self.session.flush()
            return existing

        return await self.add(
            User(
                uid=uid,
                email=email,
                display_name=display_name,
                photo_url=photo_url,
                updated_at=utcnow(),
            )
        )

    async def set_entitlement(
        self,
        uid: str,
        product_id: str,
        expires_date: str | None,
        source: str,
        **extra: Any,
    ) -> User:
        """Store (or replace) one product's entitlement record on the user.

        Raises:
            LookupError: If the user does not exist
        """
        user = await self.get_by_uid(uid)
        if user is None:
            raise LookupError(f"User {uid} not found")

        # Reassign so the JSON column is flagged dirty
        entitlements = dict(user.entitlements or {})
        entitlements[product_id] = {"expires_date": expires_date, "source": source, **extra}
        user.entitlements = entitlements
        user.updated_at = utcnow()
        self.session.add(user)
        await self.session.flush()
        return user
