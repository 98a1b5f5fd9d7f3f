"""User account API endpoints.

- POST /api/users/me - Provision the caller's profile and credit account (signup hook)
- GET /api/users/me/credits - Current gift and paid credit balances
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from sawell.api.dependencies import get_current_uid, get_uow_factory
from sawell.core.timezone import isoformat_utc
from sawell.models.credit import CreditAccount
from sawell.services.credits import CreditLedger

logger = structlog.get_logger()
router = APIRouter(prefix="/api/users", tags=["users"])


class ProvisionUserRequest(BaseModel):
    """Profile fields captured at signup."""

    email: str = Field(default="", max_length=320)
    display_name: str = Field(default="", max_length=255)
    photo_url: str = Field(default="")


class CreditBalanceResponse(BaseModel):
    """Response model for credit balances."""

    gift_credit: int
    paid_credit: int
    total_credit: int
    last_gift_reset: str | None = Field(
        default=None, description="ISO-8601 UTC time of the last weekly grant"
    )

    @classmethod
    def from_account(cls, account: CreditAccount) -> "CreditBalanceResponse":
        return cls(
            gift_credit=account.gift_credit,
            paid_credit=account.paid_credit,
            total_credit=account.total_credit,
            last_gift_reset=isoformat_utc(account.last_gift_reset),
        )


class ProvisionUserResponse(BaseModel):
    uid: str
    email: str
    display_name: str
    created_at: datetime
    credits: CreditBalanceResponse


@router.post("/me", response_model=ProvisionUserResponse, status_code=status.HTTP_200_OK)
async def provision_current_user(
    request: ProvisionUserRequest,
    uid: str = Depends(get_current_uid),
    uow_factory=Depends(get_uow_factory),
) -> ProvisionUserResponse:
    """Create or update the caller's profile and ensure a credit account exists.

    Idempotent: calling again updates profile fields and leaves balances alone.
    """
    try:
        async with await uow_factory() as uow:
            user, account = await CreditLedger(uow).provision_user(
                uid,
                email=request.email,
                display_name=request.display_name,
                photo_url=request.photo_url,
            )
    except Exception as e:
        logger.error("user.provision_failed", uid=uid, error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to provision user: {str(e)}",
        )

    return ProvisionUserResponse(
        uid=user.uid,
        email=user.email,
        display_name=user.display_name,
        created_at=user.created_at,
        credits=CreditBalanceResponse.from_account(account),
    )


@router.get("/me/credits", response_model=CreditBalanceResponse)
async def get_current_user_credits(
    uid: str = Depends(get_current_uid),
    uow_factory=Depends(get_uow_factory),
) -> CreditBalanceResponse:
    """Return the caller's balances, creating an empty account if needed."""
    async with await uow_factory() as uow:
        account = await CreditLedger(uow).get_balance(uid)
    return CreditBalanceResponse.from_account(account)
