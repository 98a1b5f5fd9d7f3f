"""Credit repositories for Sawell backend.

Provides data access for CreditAccount balances and the CreditTransaction
audit trail. Balance changes are single-statement atomic increments so
concurrent writers (weekly refresh, entitlement activation, purchases) never
lose updates.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sawell.core.timezone import utcnow
from sawell.models.credit import CreditAccount, CreditTransaction

# Sentinel: caller does not guard the increment on last_gift_reset
UNGUARDED = object()


class CreditAccountRepository:
    """Repository for CreditAccount entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, uid: str) -> CreditAccount | None:
        """Retrieve a user's credit account, always re-reading the row.

        Args:
            uid: Owner's user id

        Returns:
            CreditAccount if found, None otherwise
        """
        result = await self.session.execute(
            select(CreditAccount)
            .where(CreditAccount.uid == uid)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, uid: str) -> CreditAccount:
        """Retrieve a user's credit account, creating a zero-balance one if absent.

        Creation is an insert-if-missing so two concurrent callers end up
        with the same single row.

        Args:
            uid: Owner's user id

        Returns:
            Existing or newly created CreditAccount
        """
        account = await self.get(uid)
        if account is not None:
            return account

        values = {"uid": uid, "gift_credit": 0, "paid_credit": 0, "created_at": utcnow()}
        dialect = self.session.bind.dialect.name if self.session.bind is not None else ""
        if dialect == "postgresql":
            await self.session.execute(
                pg_insert(CreditAccount).values(**values).on_conflict_do_nothing()
            )
        elif dialect == "sqlite":
            await self.session.execute(
                sqlite_insert(CreditAccount).values(**values).on_conflict_do_nothing()
            )
        else:
            self.session.add(CreditAccount(**values))
            await self.session.flush()

        account = await self.get(uid)
        if account is None:
            raise LookupError(f"Credit account for {uid} could not be created")
        return account

    async def increment_gift(
        self,
        uid: str,
        amount: int,
        *,
        reset_at: datetime | None = None,
        expected_last_reset: object = UNGUARDED,
    ) -> bool:
        """Atomically add gift credit, optionally stamping last_gift_reset.

        When expected_last_reset is given, the update only applies if the
        stored last_gift_reset still equals it (compare-and-set). A concurrent
        grant that already moved the stamp makes this a no-op.

        Args:
            uid: Owner's user id
            amount: Credit to add (non-negative)
            reset_at: New last_gift_reset value, or None to leave it unchanged
            expected_last_reset: Guard value read by the caller (None = never granted)

        Returns:
            True if the account was updated
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")

        stmt = update(CreditAccount).where(CreditAccount.uid == uid)  # type: ignore[arg-type]
        if expected_last_reset is not UNGUARDED:
            if expected_last_reset is None:
                stmt = stmt.where(
                    CreditAccount.last_gift_reset.is_(None)  # type: ignore[union-attr]
                )
            else:
                stmt = stmt.where(
                    CreditAccount.last_gift_reset == expected_last_reset  # type: ignore[arg-type]
                )

        values: dict = {
            "gift_credit": CreditAccount.gift_credit + amount,
            "updated_at": utcnow(),
        }
        if reset_at is not None:
            values["last_gift_reset"] = reset_at

        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def increment_paid(self, uid: str, amount: int) -> bool:
        """Atomically add paid credit.

        Args:
            uid: Owner's user id
            amount: Credit to add (non-negative)

        Returns:
            True if the account was updated
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")

        result = await self.session.execute(
            update(CreditAccount)
            .where(CreditAccount.uid == uid)  # type: ignore[arg-type]
            .values(paid_credit=CreditAccount.paid_credit + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]


class CreditTransactionRepository:
    """Repository for CreditTransaction audit rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, transaction: CreditTransaction) -> CreditTransaction:
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get_by_purchase_id(self, purchase_id: str) -> CreditTransaction | None:
        result = await self.session.execute(
            select(CreditTransaction).where(
                CreditTransaction.purchase_id == purchase_id  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def list_by_owner(self, uid: str) -> list[CreditTransaction]:
        """Retrieve a user's grants, oldest first."""
        result = await self.session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.uid == uid)  # type: ignore[arg-type]
            .order_by(CreditTransaction.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
