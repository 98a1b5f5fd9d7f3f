"""Background workers for scheduled processing tasks."""

from sawell.workers.credit_refresh_worker import refresh_gift_credits, run_credit_refresh_worker

__all__ = [
    "refresh_gift_credits",
    "run_credit_refresh_worker",
]
