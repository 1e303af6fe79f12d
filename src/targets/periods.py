"""Period boundaries and status transitions for customer targets."""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal

MONTHLY = "monthly"
QUARTERLY = "quarterly"
YEARLY = "yearly"
PERIOD_KINDS = (MONTHLY, QUARTERLY, YEARLY)

ACTIVE = "active"
COMPLETED = "completed"
EXPIRED = "expired"

LEGACY_FALLBACK_DAYS = 30


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _quarter_first_month(month: int) -> int:
    return 3 * ((month - 1) // 3) + 1


def bounds_for(period_kind: str, reference: date) -> tuple[date, date]:
    """First and last day of the period of ``period_kind`` containing ``reference``."""
    if period_kind == MONTHLY:
        return date(reference.year, reference.month, 1), _month_end(reference.year, reference.month)
    if period_kind == QUARTERLY:
        first = _quarter_first_month(reference.month)
        return date(reference.year, first, 1), _month_end(reference.year, first + 2)
    if period_kind == YEARLY:
        return date(reference.year, 1, 1), date(reference.year, 12, 31)
    raise ValueError(f"Unknown period kind: {period_kind!r}")


def legacy_window(period_kind: str, deadline: date) -> tuple[date, date]:
    """Window of a target that only carries a deadline.

    The deadline is the window end; the start is the first day of the
    deadline's month/quarter/year, or 30 days earlier for any other kind.
    """
    if period_kind in PERIOD_KINDS:
        return bounds_for(period_kind, deadline)[0], deadline
    return deadline - timedelta(days=LEGACY_FALLBACK_DAYS), deadline


def resolve_window(target, today: date) -> tuple[date, date]:
    """Effective [start, end] of a target: explicit window, legacy deadline, then current month."""
    start = getattr(target, "current_period_start", None)
    end = getattr(target, "current_period_end", None)
    if start is not None and end is not None:
        return start, end
    deadline = getattr(target, "legacy_deadline", None)
    if deadline is not None:
        return legacy_window(getattr(target, "period_kind", None), deadline)
    return bounds_for(MONTHLY, today)


def period_label(period_kind: str, start: date) -> str:
    if period_kind == YEARLY:
        return f"{start.year}"
    if period_kind == QUARTERLY:
        return f"{start.year}-Q{(start.month - 1) // 3 + 1}"
    return f"{start.year}-{start.month:02d}"


def compute_rate(achieved: Decimal, target_amount: Decimal) -> Decimal:
    """achieved / target x 100, or 0 when the target is not positive."""
    if target_amount is None or target_amount <= 0:
        return Decimal("0")
    return (achieved or Decimal("0")) / target_amount * Decimal("100")


def evaluate_status(
    status: str,
    *,
    is_recurring: bool,
    achieved: Decimal,
    target_amount: Decimal,
    window_end: date,
    today: date,
) -> str:
    """Next status of a target.

    active -> completed  non-recurring and achieved >= target
    active -> expired    non-recurring, window over and rate < 100
    Recurring targets never leave ``active`` here: they roll over. Terminal
    states are returned unchanged.
    """
    if status != ACTIVE or is_recurring:
        return status
    if target_amount is not None and target_amount > 0 and achieved >= target_amount:
        return COMPLETED
    if today > window_end and compute_rate(achieved, target_amount) < 100:
        return EXPIRED
    return status


def is_near_deadline(window_end: date, today: date, days: int = 7) -> bool:
    """True when ``window_end`` falls in [today, today + days]."""
    return today <= window_end <= today + timedelta(days=days)
