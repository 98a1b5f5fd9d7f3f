"""Credit ledger operations.

Every balance change goes through CreditLedger so that it is applied as a
single atomic increment and recorded in the credit_transactions audit trail.
All methods run inside the caller's UnitOfWork; the caller's transaction
decides commit or rollback.

Gift credit is granted by the weekly refresh and on entitlement activation.
Paid credit only comes from purchases and is idempotent per purchase id.
"""

from datetime import datetime

import structlog

from sawell.core.timezone import utcnow
from sawell.models.credit import CreditAccount, CreditKind, CreditTransaction
from sawell.models.user import User
from sawell.repositories.credit import UNGUARDED
from sawell.services.entitlements import is_entitlement_active
from sawell.services.exceptions import AccountNotFoundError, LedgerError, UnknownProductError
from sawell.uow import UnitOfWork

logger = structlog.get_logger(__name__)

# Client-facing limits for video generation
VIDEO_GENERATION_CREDITS = 1
VIDEO_MAX_DURATION_SECONDS = 15
VIDEO_MAX_WORD_COUNT = 35  # ~35 words fit a 15 second video
USE_CREDITS_AMOUNT = 5

# Grant reasons recorded on CreditTransaction.reason
REASON_WEEKLY_RESET = "weekly_reset"
REASON_ENTITLEMENT_ACTIVATION = "entitlement_activation"
REASON_PURCHASE = "purchase"

# Consumable in-app products -> paid credit granted
PURCHASE_CREDIT_MAP: dict[str, int] = {
    "com.sawell.creative.credit.single": 1,
    "com.sawell.creative.credit.10pack": 6,
    "com.sawell.creative.credit.30pack": 13,
}


class CreditLedger:
    """Credit grant primitives bound to one UnitOfWork."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def get_balance(self, uid: str) -> CreditAccount:
        """Return the user's account, creating a zero-balance one if absent."""
        return await self.uow.credit_accounts.get_or_create(uid)

    async def grant_gift_credit(
        self,
        uid: str,
        amount: int,
        reason: str,
        *,
        reset_at: datetime | None = None,
        expected_last_reset: object = UNGUARDED,
    ) -> bool:
        """Atomically add gift credit and record the grant.

        Args:
            uid: Owner's user id
            amount: Positive number of credits
            reason: Audit reason (e.g. "weekly_reset")
            reset_at: New last_gift_reset stamp, or None to leave it unchanged
            expected_last_reset: last_gift_reset value the caller decided on; if the
                stored value has moved since, nothing is granted

        Returns:
            True if credit was granted, False if a concurrent grant won the race

        Raises:
            LedgerError: If amount is not positive
        """
        if amount <= 0:
            raise LedgerError(f"Gift amount must be positive, got {amount}")

        await self.uow.credit_accounts.get_or_create(uid)
        applied = await self.uow.credit_accounts.increment_gift(
            uid, amount, reset_at=reset_at, expected_last_reset=expected_last_reset
        )
        if not applied:
            if expected_last_reset is UNGUARDED:
                raise AccountNotFoundError(f"Credit account for {uid} disappeared")
            logger.info("credits.gift.skipped_concurrent_grant", uid=uid, reason=reason)
            return False

        await self.uow.credit_transactions.add(
            CreditTransaction(uid=uid, kind=CreditKind.GIFT, amount=amount, reason=reason)
        )
        logger.info("credits.gift.granted", uid=uid, amount=amount, reason=reason)
        return True

    async def grant_paid_credit(
        self,
        uid: str,
        amount: int,
        product_id: str | None = None,
        purchase_id: str | None = None,
    ) -> bool:
        """Atomically add paid credit and record the grant.

        A purchase id that was already credited is ignored, so store
        notifications can be replayed safely.

        Returns:
            True if credit was granted, False for a duplicate purchase id

        Raises:
            LedgerError: If amount is not positive
        """
        if amount <= 0:
            raise LedgerError(f"Paid amount must be positive, got {amount}")

        if purchase_id:
            existing = await self.uow.credit_transactions.get_by_purchase_id(purchase_id)
            if existing is not None:
                logger.info("credits.paid.duplicate_purchase", uid=uid, purchase_id=purchase_id)
                return False

        await self.uow.credit_accounts.get_or_create(uid)
        if not await self.uow.credit_accounts.increment_paid(uid, amount):
            raise AccountNotFoundError(f"Credit account for {uid} disappeared")

        await self.uow.credit_transactions.add(
            CreditTransaction(
                uid=uid,
                kind=CreditKind.PAID,
                amount=amount,
                reason=REASON_PURCHASE,
                product_id=product_id,
                purchase_id=purchase_id or None,
            )
        )
        logger.info(
            "credits.paid.granted",
            uid=uid,
            amount=amount,
            product_id=product_id,
            purchase_id=purchase_id,
        )
        return True

    async def grant_purchase(self, uid: str, product_id: str, purchase_id: str) -> int:
        """Credit a consumable product purchase.

        Returns:
            Credits granted (0 if the purchase was already credited)

        Raises:
            UnknownProductError: If product_id has no credit mapping
        """
        amount = PURCHASE_CREDIT_MAP.get(product_id)
        if amount is None:
            raise UnknownProductError(f"No credit mapping for product {product_id}")

        granted = await self.grant_paid_credit(
            uid, amount, product_id=product_id, purchase_id=purchase_id
        )
        return amount if granted else 0

    async def activate_entitlement(
        self,
        uid: str,
        product_id: str,
        expires_date: str | None,
        *,
        amount: int,
        source: str = "revenuecat",
    ) -> bool:
        """Store an entitlement and grant the activation bonus.

        The bonus is gift credit but does not stamp last_gift_reset, so the
        weekly schedule is unaffected. Re-delivering the same entitlement
        (same product, same expiry) grants nothing.

        Args:
            uid: Owner's user id
            product_id: Entitlement product identifier
            expires_date: ISO-8601 expiry, or None
            amount: Activation bonus (settings.entitlement_activation_credit)
            source: Where the entitlement came from

        Returns:
            True if activation credit was granted
        """
        user = await self.uow.users.get_by_uid(uid)
        if user is None:
            raise LookupError(f"User {uid} not found")

        previous = (user.entitlements or {}).get(product_id)
        await self.uow.users.set_entitlement(uid, product_id, expires_date, source)

        now = utcnow()
        new_entitlement = {"expires_date": expires_date}
        if not is_entitlement_active(new_entitlement, now):
            logger.info("credits.activation.inactive", uid=uid, product_id=product_id)
            return False

        if (
            isinstance(previous, dict)
            and previous.get("expires_date") == expires_date
            and is_entitlement_active(previous, now)
        ):
            logger.info("credits.activation.already_applied", uid=uid, product_id=product_id)
            return False

        if amount <= 0:
            return False
        return await self.grant_gift_credit(uid, amount, REASON_ENTITLEMENT_ACTIVATION)

    async def provision_user(
        self,
        uid: str,
        email: str = "",
        display_name: str = "",
        photo_url: str = "",
    ) -> tuple[User, CreditAccount]:
        """Create or refresh a user profile and make sure a credit account exists.

        Safe to call repeatedly; existing balances are never reset.
        """
        if not email:
            logger.warning("user.created_without_email", uid=uid)

        user = await self.uow.users.upsert_profile(
            uid, email=email, display_name=display_name, photo_url=photo_url
        )
        account = await self.uow.credit_accounts.get_or_create(uid)
        logger.info("user.provisioned", uid=uid, email=email or "none")
        return user, account
