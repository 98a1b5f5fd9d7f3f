"""Tests for the refresh_credits CLI command."""

import pytest

from sawell.cli import refresh_credits
from sawell.cli.refresh_credits import async_main, exit_code_for, parse_args
from sawell.core.timezone import utcnow
from sawell.models.user import User
from sawell.workers.credit_refresh_worker import RefreshSummary


def test_parse_args_defaults():
    assert parse_args([]).verbose is False
    assert parse_args(["-v"]).verbose is True


def test_exit_code_reports_partial_failure():
    assert exit_code_for(RefreshSummary(granted=3)) == 0
    assert exit_code_for(RefreshSummary(granted=3, errors=1)) == 2


@pytest.mark.asyncio
async def test_async_main_runs_refresh(settings, uow_factory, monkeypatch, capsys):
    async with await uow_factory() as uow:
        await uow.users.add(
            User(uid="u1", entitlements={"pro": {"expires_date": "2099-01-01T00:00:00Z"}})
        )
        await uow.users.add(User(uid="u2"))

    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", settings.database_url)
    monkeypatch.setattr(refresh_credits, "configure_logging", lambda settings: None)

    exit_code = await async_main([])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Users processed: 2" in output
    assert "Granted: 1" in output

    async with await uow_factory() as uow:
        account = await uow.credit_accounts.get("u1")
    assert account.gift_credit == 2
    assert account.last_gift_reset <= utcnow()


@pytest.mark.asyncio
async def test_async_main_returns_1_when_store_unavailable(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setattr(refresh_credits, "configure_logging", lambda settings: None)
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")

    assert await async_main([]) == 1
