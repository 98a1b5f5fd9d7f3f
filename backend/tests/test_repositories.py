"""Repository tests against a real (SQLite) database."""

from datetime import datetime

import pytest

from sawell.models.credit import CreditAccount, CreditKind, CreditTransaction
from sawell.models.user import User
from sawell.models.video_task import VideoTask
from sawell.repositories.credit import CreditAccountRepository, CreditTransactionRepository
from sawell.repositories.user import UserRepository
from sawell.repositories.video_task import VideoStatusFields, VideoTaskRepository


@pytest.mark.asyncio
async def test_video_task_add_stamps_created_at(session):
    repo = VideoTaskRepository(session)

    task = await repo.add(VideoTask(video_id="v-1", uid="u1", status="processing"))

    assert task.created_at is not None
    assert (await repo.get_by_id("v-1")).uid == "u1"
    assert await repo.get_by_id("missing") is None


@pytest.mark.asyncio
async def test_video_task_list_by_owner(session):
    repo = VideoTaskRepository(session)
    await repo.add(VideoTask(video_id="a", uid="u1"))
    await repo.add(VideoTask(video_id="b", uid="u1"))
    await repo.add(VideoTask(video_id="c", uid="u2"))

    tasks = await repo.list_by_owner("u1")

    assert sorted(task.video_id for task in tasks) == ["a", "b"]
    assert await repo.list_by_owner("nobody") == []


@pytest.mark.asyncio
async def test_video_task_apply_refresh(session):
    repo = VideoTaskRepository(session)
    await repo.add(VideoTask(video_id="v-1", uid="u1", status="processing", script="hi"))

    updated = await repo.apply_refresh(
        "v-1",
        VideoStatusFields(
            status="failed",
            video_url=None,
            progress=80,
            error_code="E1",
            error_message="render failed",
            error_detail=None,
        ),
    )
    session.expire_all()
    task = await repo.get_by_id("v-1")

    assert updated is True
    assert task.status == "failed"
    assert task.progress == 80
    assert task.error_code == "E1"
    assert task.script == "hi"
    assert task.updated_at is not None
    assert await repo.apply_refresh("missing", VideoStatusFields("completed", *[None] * 5)) is False


@pytest.mark.asyncio
async def test_video_task_apply_refresh_leaves_terminal_task_alone(session):
    repo = VideoTaskRepository(session)
    await repo.add(
        VideoTask(video_id="v-1", uid="u1", status="completed", video_url="https://x/v.mp4")
    )

    stale = VideoStatusFields("processing", None, 10, None, None, None)
    updated = await repo.apply_refresh("v-1", stale)
    session.expire_all()
    task = await repo.get_by_id("v-1")

    assert updated is False
    assert task.status == "completed"
    assert task.video_url == "https://x/v.mp4"
    assert task.progress is None
    assert task.updated_at is None


@pytest.mark.asyncio
async def test_naive_utc_timestamps_round_trip(session):
    """Timestamps are stored and read back as naive UTC values."""
    stamp = datetime(2026, 10, 19, 0, 0, 0)
    session.add(CreditAccount(uid="u1", last_gift_reset=stamp))
    await VideoTaskRepository(session).add(VideoTask(video_id="v-1", uid="u1", created_at=stamp))
    await session.flush()
    session.expire_all()

    account = await CreditAccountRepository(session).get("u1")
    task = await VideoTaskRepository(session).get_by_id("v-1")

    assert account.last_gift_reset == stamp
    assert account.last_gift_reset.tzinfo is None
    assert task.created_at == stamp
    assert task.created_at.tzinfo is None


@pytest.mark.asyncio
async def test_user_iter_uids_pages_through_everyone(session):
    repo = UserRepository(session)
    for i in range(7):
        await repo.add(User(uid=f"user-{i}"))

    uids = [uid async for uid in repo.iter_uids(batch_size=3)]

    assert uids == [f"user-{i}" for i in range(7)]


@pytest.mark.asyncio
async def test_user_upsert_profile_keeps_entitlements(session):
    repo = UserRepository(session)
    await repo.add(User(uid="u1", entitlements={"pro": {"expires_date": "2099-01-01T00:00:00Z"}}))

    user = await repo.upsert_profile("u1", email="new@example.com", display_name="New")

    assert user.email == "new@example.com"
    assert user.entitlements == {"pro": {"expires_date": "2099-01-01T00:00:00Z"}}


@pytest.mark.asyncio
async def test_user_set_entitlement(session):
    repo = UserRepository(session)
    await repo.add(User(uid="u1"))

    await repo.set_entitlement("u1", "pro", "2099-01-01T00:00:00Z", "revenuecat", store="app")
    await repo.set_entitlement("u1", "plus", None, "manual")
    session.expire_all()
    user = await repo.get_by_uid("u1")

    assert user.entitlements == {
        "pro": {"expires_date": "2099-01-01T00:00:00Z", "source": "revenuecat", "store": "app"},
        "plus": {"expires_date": None, "source": "manual"},
    }
    with pytest.raises(LookupError):
        await repo.set_entitlement("ghost", "pro", None, "manual")


@pytest.mark.asyncio
async def test_credit_account_get_or_create_is_single_row(session):
    repo = CreditAccountRepository(session)

    first = await repo.get_or_create("u1")
    second = await repo.get_or_create("u1")

    assert first.uid == second.uid == "u1"
    assert (first.gift_credit, first.paid_credit, first.last_gift_reset) == (0, 0, None)


@pytest.mark.asyncio
async def test_credit_account_increment_gift_guard(session):
    repo = CreditAccountRepository(session)
    await repo.get_or_create("u1")
    stamp = datetime(2026, 10, 19, 0, 0, 0)

    assert await repo.increment_gift("u1", 2, reset_at=stamp, expected_last_reset=None) is True
    assert await repo.increment_gift("u1", 2, reset_at=stamp, expected_last_reset=None) is False
    assert await repo.increment_gift("u1", 1, expected_last_reset=stamp) is True
    assert await repo.increment_gift("u1", 1) is True
    assert await repo.increment_gift("missing", 1) is False

    account = await repo.get("u1")
    assert account.gift_credit == 4
    assert account.paid_credit == 0
    assert account.last_gift_reset == stamp

    with pytest.raises(ValueError):
        await repo.increment_gift("u1", -1)


@pytest.mark.asyncio
async def test_credit_account_increment_paid(session):
    repo = CreditAccountRepository(session)
    session.add(CreditAccount(uid="u1", gift_credit=2))
    await session.flush()

    assert await repo.increment_paid("u1", 6) is True

    account = await repo.get("u1")
    assert account.paid_credit == 6
    assert account.gift_credit == 2


@pytest.mark.asyncio
async def test_credit_transactions_lookup(session):
    repo = CreditTransactionRepository(session)
    await repo.add(
        CreditTransaction(
            uid="u1",
            kind=CreditKind.PAID,
            amount=6,
            reason="purchase",
            purchase_id="txn-1",
            created_at=datetime(2026, 10, 2),
        )
    )
    await repo.add(
        CreditTransaction(
            uid="u1",
            kind=CreditKind.GIFT,
            amount=2,
            reason="weekly_reset",
            created_at=datetime(2026, 10, 1),
        )
    )

    assert (await repo.get_by_purchase_id("txn-1")).amount == 6
    assert await repo.get_by_purchase_id("txn-2") is None
    assert [t.reason for t in await repo.list_by_owner("u1")] == ["weekly_reset", "purchase"]
