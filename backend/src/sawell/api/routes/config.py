"""Public app configuration endpoint.

- GET /api/config - Credit constants and feature availability for clients,
  so the app does not hard-code them. No authentication required.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sawell.api.dependencies import get_settings
from sawell.core.config import Settings
from sawell.services.credits import (
    USE_CREDITS_AMOUNT,
    VIDEO_GENERATION_CREDITS,
    VIDEO_MAX_DURATION_SECONDS,
    VIDEO_MAX_WORD_COUNT,
)

router = APIRouter(prefix="/api/config", tags=["config"])


class CreditConfig(BaseModel):
    videoGenerationRequired: int
    videoMaxDurationSeconds: int
    videoMaxWordCount: int
    useCreditsAmount: int
    entitlementActivationCredit: int
    weeklyGiftCredit: int


class HeyGenConfig(BaseModel):
    # Masked: "***" when a key is configured, never the key itself
    apiKey: str | None


class AppConfig(BaseModel):
    credits: CreditConfig
    heyGen: HeyGenConfig


class AppConfigResponse(BaseModel):
    success: bool
    config: AppConfig


@router.get("", response_model=AppConfigResponse)
async def get_app_config(settings: Settings = Depends(get_settings)) -> AppConfigResponse:
    """Return client-facing configuration."""
    return AppConfigResponse(
        success=True,
        config=AppConfig(
            credits=CreditConfig(
                videoGenerationRequired=VIDEO_GENERATION_CREDITS,
                videoMaxDurationSeconds=VIDEO_MAX_DURATION_SECONDS,
                videoMaxWordCount=VIDEO_MAX_WORD_COUNT,
                useCreditsAmount=USE_CREDITS_AMOUNT,
                entitlementActivationCredit=settings.entitlement_activation_credit,
                weeklyGiftCredit=settings.weekly_gift_credit,
            ),
            heyGen=HeyGenConfig(apiKey="***" if settings.heygen_configured else None),
        ),
    )
