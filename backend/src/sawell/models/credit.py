"""Credit entities - Per-user balances and the grant audit trail."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from sawell.core.timezone import utcnow


class CreditKind(str, Enum):
    """Which balance a transaction touched."""

    GIFT = "gift"
    PAID = "paid"


class CreditAccount(SQLModel, table=True):
    """CreditAccount holds a user's two balances.

    gift_credit is replenished by the weekly refresh and entitlement
    activation. paid_credit only grows through purchases and is never
    written by the refresh path.
    """

    __tablename__ = "credit_accounts"  # type: ignore[assignment]
    __table_args__ = (
        CheckConstraint("gift_credit >= 0", name="ck_credit_accounts_gift_non_negative"),
        CheckConstraint("paid_credit >= 0", name="ck_credit_accounts_paid_non_negative"),
    )

    uid: str = Field(primary_key=True, max_length=128)
    gift_credit: int = Field(default=0, ge=0)
    paid_credit: int = Field(default=0, ge=0)
    last_gift_reset: Optional[datetime] = Field(default=None)  # None = never granted
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = Field(default=None)

    @property
    def total_credit(self) -> int:
        return self.gift_credit + self.paid_credit


class CreditTransaction(SQLModel, table=True):
    """Append-only record of every credit grant."""

    __tablename__ = "credit_transactions"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    uid: str = Field(index=True, max_length=128)
    kind: CreditKind
    amount: int
    reason: str = Field(max_length=100)
    product_id: Optional[str] = Field(default=None, max_length=255)
    purchase_id: Optional[str] = Field(default=None, max_length=255, unique=True)
    created_at: datetime = Field(default_factory=utcnow)
