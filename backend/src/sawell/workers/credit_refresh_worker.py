"""Weekly gift credit refresh.

Runs once a day at CREDIT_REFRESH_HOUR_UTC and walks every user:

- No active entitlement: skipped. This is how lapsed subscribers stop
  receiving credit; there is no explicit cancel step.
- Active entitlement and never granted, or at least GIFT_RESET_INTERVAL_DAYS
  whole days since last_gift_reset: grant WEEKLY_GIFT_CREDIT gift credit and
  stamp last_gift_reset = now, in one guarded UPDATE.
- Otherwise: skipped as too soon.

Eligibility is derived from last_gift_reset alone, never from how often the
job ran, so re-running the job (or resuming after a crash) cannot double
grant inside one interval. The grant is a compare-and-set on the
last_gift_reset value that was read, so two overlapping runs cannot both
grant either. paid_credit is never written here.

Each user is processed in its own unit of work; one user's failure is
counted and logged and the run continues.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from sawell.core.config import Settings
from sawell.core.timezone import to_naive_utc, utcnow
from sawell.services.credits import REASON_WEEKLY_RESET, CreditLedger
from sawell.services.entitlements import evaluate

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)


class RefreshOutcome(str, Enum):
    GRANTED = "granted"
    SKIPPED_INACTIVE = "skipped_inactive"
    SKIPPED_TOO_SOON = "skipped_too_soon"
    SKIPPED_CONCURRENT = "skipped_concurrent"


@dataclass
class RefreshSummary:
    """Counters for one refresh run."""

    granted: int = 0
    skipped_inactive: int = 0
    skipped_too_soon: int = 0
    skipped_concurrent: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return (
            self.granted
            + self.skipped_inactive
            + self.skipped_too_soon
            + self.skipped_concurrent
            + self.errors
        )

    def record(self, outcome: RefreshOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def days_since(last_reset: datetime, now: datetime) -> int:
    """Whole days elapsed, floored (6 days 23 hours -> 6)."""
    return (to_naive_utc(now) - to_naive_utc(last_reset)) // ONE_DAY


def is_grant_due(last_reset: datetime | None, now: datetime, interval_days: int) -> bool:
    if last_reset is None:
        return True
    return days_since(last_reset, now) >= interval_days


async def refresh_user(
    uow_factory: Callable[[], Awaitable[Any]],
    uid: str,
    settings: Settings,
    now: datetime,
) -> RefreshOutcome:
    """Apply the weekly grant rule to one user inside its own transaction.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        uid: User to process
        settings: Application settings (grant amount, interval)
        now: Evaluation instant for the whole run

    Returns:
        What happened to this user

    Raises:
        Exception: Any store error (caller counts it)
    """
    async with await uow_factory() as uow:
        user = await uow.users.get_by_uid(uid)
        entitlements = user.entitlements if user is not None else None

        evaluation = evaluate(entitlements, now)
        if not evaluation.active:
            logger.info("credits.refresh.skipped_inactive", uid=uid)
            return RefreshOutcome.SKIPPED_INACTIVE

        account = await uow.credit_accounts.get_or_create(uid)
        last_reset = account.last_gift_reset

        if last_reset is not None:
            elapsed_days = days_since(last_reset, now)
            if elapsed_days < settings.gift_reset_interval_days:
                logger.info(
                    "credits.refresh.skipped_too_soon",
                    uid=uid,
                    days_since_reset=elapsed_days,
                )
                return RefreshOutcome.SKIPPED_TOO_SOON
            logger.info("credits.refresh.due", uid=uid, days_since_reset=elapsed_days)

        granted = await CreditLedger(uow).grant_gift_credit(
            uid,
            settings.weekly_gift_credit,
            REASON_WEEKLY_RESET,
            reset_at=now,
            expected_last_reset=last_reset,
        )
        if not granted:
            return RefreshOutcome.SKIPPED_CONCURRENT

        logger.info(
            "credits.refresh.granted",
            uid=uid,
            amount=settings.weekly_gift_credit,
            products=list(evaluation.active_products),
        )
        return RefreshOutcome.GRANTED


async def refresh_gift_credits(
    uow_factory: Callable[[], Awaitable[Any]],
    settings: Settings,
    now: datetime | None = None,
) -> RefreshSummary:
    """Run one weekly gift credit pass over every user.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        settings: Application settings
        now: Evaluation instant (defaults to current UTC time)

    Returns:
        RefreshSummary with per-outcome counts

    Raises:
        Exception: If the user population cannot be listed at all
    """
    run_at = to_naive_utc(now) if now is not None else utcnow()
    start_time = time.monotonic()
    logger.info("credits.refresh.started", run_at=run_at.isoformat())

    async with await uow_factory() as uow:
        uids = [uid async for uid in uow.users.iter_uids()]

    summary = RefreshSummary()
    for uid in uids:
        try:
            outcome = await refresh_user(uow_factory, uid, settings, run_at)
        except Exception as e:
            summary.errors += 1
            logger.error(
                "credits.refresh.user_failed",
                uid=uid,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        summary.record(outcome)

    logger.info(
        "credits.refresh.completed",
        users=len(uids),
        granted=summary.granted,
        skipped_inactive=summary.skipped_inactive,
        skipped_too_soon=summary.skipped_too_soon,
        skipped_concurrent=summary.skipped_concurrent,
        errors=summary.errors,
        duration_seconds=round(time.monotonic() - start_time, 3),
    )
    return summary


def seconds_until_next_run(now: datetime, hour_utc: int) -> float:
    """Seconds from now until the next hour_utc:00 UTC (strictly in the future)."""
    now = to_naive_utc(now)
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += ONE_DAY
    return (target - now).total_seconds()


async def run_credit_refresh_worker(
    uow_factory: Callable[[], Awaitable[Any]],
    settings: Settings,
) -> None:
    """Main worker loop: sleep until the daily slot, run a refresh, repeat.

    A failed run is logged and the loop waits for the next slot; the next
    run picks up any users this one missed.

    Args:
        uow_factory: Factory producing UnitOfWork instances
        settings: Application settings (schedule hour, grant amount)
    """
    logger.info(
        "worker.started",
        worker="credit_refresh",
        hour_utc=settings.credit_refresh_hour_utc,
        interval_days=settings.gift_reset_interval_days,
    )

    try:
        while True:
            delay = seconds_until_next_run(utcnow(), settings.credit_refresh_hour_utc)
            logger.debug("credits.refresh.scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)

            try:
                await refresh_gift_credits(uow_factory, settings)

            except asyncio.CancelledError:
                # Propagate cancellation for graceful shutdown
                raise

            except Exception as e:
                logger.error(
                    "credits.refresh.failed",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )

    except asyncio.CancelledError:
        # Graceful shutdown
        logger.info("worker.stopped", worker="credit_refresh")
        raise
