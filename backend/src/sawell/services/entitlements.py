"""Entitlement evaluation.

A user is a paying member iff at least one entitlement in their set has an
expiry strictly later than the evaluation instant. Unparseable expiries
count as inactive (fail closed). Pure functions, no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from sawell.core.timezone import to_naive_utc, utcnow

EXPIRY_FIELD = "expires_date"


@dataclass(frozen=True)
class EntitlementEvaluation:
    """Outcome of evaluating an entitlement set at a given instant."""

    active: bool
    evaluated_at: datetime
    active_products: tuple[str, ...] = ()


def parse_expiry(value: Any) -> datetime | None:
    """Parse an entitlement expiry into a naive UTC datetime.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix allowed) and epoch
    milliseconds. Naive values are taken as UTC.

    Returns:
        Parsed expiry, or None if missing or malformed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def is_entitlement_active(entitlement: Any, now: datetime) -> bool:
    if not isinstance(entitlement, Mapping):
        return False
    expiry = parse_expiry(entitlement.get(EXPIRY_FIELD))
    return expiry is not None and expiry > now


def evaluate(
    entitlements: Mapping[str, Any] | None, now: datetime | None = None
) -> EntitlementEvaluation:
    """Evaluate an entitlement set.

    Args:
        entitlements: Mapping of product id to entitlement record
        now: Evaluation instant (defaults to current UTC time)

    Returns:
        EntitlementEvaluation with the instant used and the active product ids
    """
    evaluated_at = to_naive_utc(now) if now is not None else utcnow()
    if not isinstance(entitlements, Mapping):
        return EntitlementEvaluation(active=False, evaluated_at=evaluated_at)

    active_products = tuple(
        product_id
        for product_id, entitlement in entitlements.items()
        if is_entitlement_active(entitlement, evaluated_at)
    )
    return EntitlementEvaluation(
        active=bool(active_products),
        evaluated_at=evaluated_at,
        active_products=active_products,
    )


def has_active_entitlement(
    entitlements: Mapping[str, Any] | None, now: datetime | None = None
) -> bool:
    return evaluate(entitlements, now).active
