"""User entity - App user profile with embedded entitlement set."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from sawell.core.timezone import utcnow


class User(SQLModel, table=True):
    """User profile keyed by the auth provider's uid.

    ``entitlements`` maps product identifier to an entitlement record, e.g.::

        {"pro_weekly": {"expires_date": "2026-01-01T00:00:00Z", "source": "revenuecat"}}

    The expiry is the only thing trusted to decide membership; there is no
    separate "is subscribed" flag.
    """

    __tablename__ = "users"  # type: ignore[assignment]

    uid: str = Field(primary_key=True, max_length=128)
    display_name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=320)
    photo_url: str = Field(default="")
    super_admin: bool = Field(default=False)
    entitlements: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = Field(default=None)
