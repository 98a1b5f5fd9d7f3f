"""Credit ledger tests.

Tests cover:
- Gift grants (guarded and unguarded) with audit rows
- Paid grants are idempotent per purchase id
- Entitlement activation bonus
- User provisioning
"""

from datetime import datetime, timedelta

import pytest

from sawell.core.timezone import utcnow
from sawell.models.credit import CreditAccount, CreditKind
from sawell.models.user import User
from sawell.services.credits import PURCHASE_CREDIT_MAP, CreditLedger
from sawell.services.exceptions import LedgerError, UnknownProductError


def iso(dt: datetime) -> str:
    return dt.isoformat() + "Z"


async def seed_account(uow_factory, uid: str, **fields) -> None:
    async with await uow_factory() as uow:
        await uow.users.add(User(uid=uid))
        uow.session.add(CreditAccount(uid=uid, **fields))


async def load_account(uow_factory, uid: str) -> CreditAccount:
    async with await uow_factory() as uow:
        account = await uow.credit_accounts.get(uid)
    assert account is not None
    return account


@pytest.mark.asyncio
async def test_unguarded_gift_grant_adds_credit_and_audit_row(uow_factory):
    await seed_account(uow_factory, "u1", gift_credit=1, paid_credit=4)

    async with await uow_factory() as uow:
        granted = await CreditLedger(uow).grant_gift_credit("u1", 2, "manual")

    assert granted is True
    account = await load_account(uow_factory, "u1")
    assert account.gift_credit == 3
    assert account.paid_credit == 4
    assert account.last_gift_reset is None

    async with await uow_factory() as uow:
        transactions = await uow.credit_transactions.list_by_owner("u1")
    assert [(t.kind, t.amount, t.reason) for t in transactions] == [
        (CreditKind.GIFT, 2, "manual")
    ]


@pytest.mark.asyncio
async def test_guarded_gift_grant_with_stale_stamp_is_rejected(uow_factory):
    stamped = datetime(2026, 10, 18, 0, 0)
    await seed_account(uow_factory, "u1", gift_credit=2, last_gift_reset=stamped)

    async with await uow_factory() as uow:
        granted = await CreditLedger(uow).grant_gift_credit(
            "u1",
            2,
            "weekly_reset",
            reset_at=datetime(2026, 10, 19, 0, 0),
            expected_last_reset=stamped - timedelta(days=7),
        )

    assert granted is False
    account = await load_account(uow_factory, "u1")
    assert account.gift_credit == 2
    assert account.last_gift_reset == stamped

    async with await uow_factory() as uow:
        assert await uow.credit_transactions.list_by_owner("u1") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -2])
async def test_non_positive_grants_are_rejected(uow_factory, amount):
    await seed_account(uow_factory, "u1")

    async with await uow_factory() as uow:
        ledger = CreditLedger(uow)
        with pytest.raises(LedgerError):
            await ledger.grant_gift_credit("u1", amount, "manual")
        with pytest.raises(LedgerError):
            await ledger.grant_paid_credit("u1", amount)


@pytest.mark.asyncio
async def test_purchase_is_credited_once(uow_factory):
    await seed_account(uow_factory, "u1", gift_credit=2)
    product = "com.sawell.creative.credit.10pack"

    async with await uow_factory() as uow:
        first = await CreditLedger(uow).grant_purchase("u1", product, "txn-1")
    async with await uow_factory() as uow:
        replay = await CreditLedger(uow).grant_purchase("u1", product, "txn-1")

    assert first == PURCHASE_CREDIT_MAP[product] == 6
    assert replay == 0
    account = await load_account(uow_factory, "u1")
    assert account.paid_credit == 6
    assert account.gift_credit == 2
    assert account.total_credit == 8


@pytest.mark.asyncio
async def test_unknown_product_is_rejected(uow_factory):
    await seed_account(uow_factory, "u1")

    async with await uow_factory() as uow:
        with pytest.raises(UnknownProductError):
            await CreditLedger(uow).grant_purchase("u1", "com.example.unknown", "txn-9")

    assert (await load_account(uow_factory, "u1")).paid_credit == 0


async def activate(uow_factory, settings, uid: str, expires: str, product_id: str = "pro_weekly"):
    async with await uow_factory() as uow:
        return await CreditLedger(uow).activate_entitlement(
            uid, product_id, expires, amount=settings.entitlement_activation_credit
        )


@pytest.mark.asyncio
async def test_activation_grants_bonus_without_touching_weekly_stamp(uow_factory, settings):
    await seed_account(uow_factory, "u1")
    expires = iso(utcnow() + timedelta(days=7))

    granted = await activate(uow_factory, settings, "u1", expires)

    assert granted is True
    account = await load_account(uow_factory, "u1")
    assert account.gift_credit == 2
    assert account.last_gift_reset is None

    async with await uow_factory() as uow:
        user = await uow.users.get_by_uid("u1")
    assert user.entitlements["pro_weekly"]["expires_date"] == expires
    assert user.entitlements["pro_weekly"]["source"] == "revenuecat"


@pytest.mark.asyncio
async def test_activation_grants_configured_amount(uow_factory, settings):
    """ENTITLEMENT_ACTIVATION_CREDIT drives the bonus, not a built-in default."""
    await seed_account(uow_factory, "u1")
    generous = settings.model_copy(update={"entitlement_activation_credit": 5})

    granted = await activate(uow_factory, generous, "u1", iso(utcnow() + timedelta(days=7)))

    assert granted is True
    assert (await load_account(uow_factory, "u1")).gift_credit == 5


@pytest.mark.asyncio
async def test_zero_activation_credit_grants_nothing(uow_factory, settings):
    await seed_account(uow_factory, "u1")
    disabled = settings.model_copy(update={"entitlement_activation_credit": 0})

    granted = await activate(uow_factory, disabled, "u1", iso(utcnow() + timedelta(days=7)))

    assert granted is False
    assert (await load_account(uow_factory, "u1")).gift_credit == 0


@pytest.mark.asyncio
async def test_redelivered_activation_grants_nothing(uow_factory, settings):
    await seed_account(uow_factory, "u1")
    expires = iso(utcnow() + timedelta(days=7))

    assert await activate(uow_factory, settings, "u1", expires)
    assert not await activate(uow_factory, settings, "u1", expires)

    assert (await load_account(uow_factory, "u1")).gift_credit == 2


@pytest.mark.asyncio
async def test_renewal_with_new_expiry_grants_again(uow_factory, settings):
    await seed_account(uow_factory, "u1")
    now = utcnow()

    await activate(uow_factory, settings, "u1", iso(now + timedelta(days=7)))
    await activate(uow_factory, settings, "u1", iso(now + timedelta(days=14)))

    assert (await load_account(uow_factory, "u1")).gift_credit == 4


@pytest.mark.asyncio
async def test_expired_activation_stores_entitlement_without_credit(uow_factory, settings):
    await seed_account(uow_factory, "u1")
    expired = iso(utcnow() - timedelta(days=1))

    granted = await activate(uow_factory, settings, "u1", expired)

    assert granted is False
    assert (await load_account(uow_factory, "u1")).gift_credit == 0
    async with await uow_factory() as uow:
        user = await uow.users.get_by_uid("u1")
    assert user.entitlements["pro_weekly"]["expires_date"] == expired


@pytest.mark.asyncio
async def test_activation_for_missing_user_raises(uow_factory, settings):
    with pytest.raises(LookupError):
        await activate(uow_factory, settings, "ghost", iso(utcnow() + timedelta(days=7)))


@pytest.mark.asyncio
async def test_provision_user_is_idempotent_and_keeps_balances(uow_factory):
    async with await uow_factory() as uow:
        user, account = await CreditLedger(uow).provision_user(
            "u1", email="a@example.com", display_name="Ann"
        )
        assert account.gift_credit == 0
        assert account.paid_credit == 0
        await CreditLedger(uow).grant_paid_credit("u1", 3, purchase_id="txn-1")

    async with await uow_factory() as uow:
        user, account = await CreditLedger(uow).provision_user(
            "u1", email="ann@example.com", display_name="Ann B"
        )

    assert user.email == "ann@example.com"
    assert user.display_name == "Ann B"
    assert account.paid_credit == 3
