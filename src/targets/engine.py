"""Achievement engine for customer targets.

Core design principles:
- Invoices are the source of truth; the target row only caches the result
- Window resolution is delegated to ``targets.periods``
- A failing invoice read never fails the caller: it degrades to a zero,
  stale result and a warning in the log
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable

from django.db import transaction
from django.utils import timezone

from targets.exceptions import ComputationUnavailable
from targets.normalizer import ZERO, normalize, round_money, to_decimal, vat_breakdown
from targets.periods import compute_rate, resolve_window

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementResult:
    achieved_amount: Decimal
    achievement_rate: Decimal
    record_count: int
    records: list = field(default_factory=list)
    window_start: date | None = None
    window_end: date | None = None
    stale: bool = False

    def as_dict(self) -> dict:
        return {
            "achieved_amount": self.achieved_amount,
            "achievement_rate": self.achievement_rate,
            "record_count": self.record_count,
            "records": self.records,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "stale": self.stale,
        }


def _default_fetch(customer_code: str, start: date, end: date) -> Iterable:
    from sales.services import find_invoices_for_customer

    return find_invoices_for_customer(customer_code, start, end)


class AchievementCalculator:
    """Sum the tax-exclusive invoices of a target's customer over its window."""

    def __init__(self, fetch_records: Callable[[str, date, date], Iterable] | None = None) -> None:
        self.fetch_records = fetch_records or _default_fetch

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compute(self, target, today: date | None = None) -> AchievementResult:
        today = today or timezone.localdate()
        start, end = resolve_window(target, today)

        try:
            records = self._load_records(target.customer_code, start, end)
        except ComputationUnavailable as exc:
            logger.warning(
                "Achievement unavailable for target=%s customer=%s: %s",
                getattr(target, "pk", None),
                target.customer_code,
                exc,
            )
            return AchievementResult(
                achieved_amount=ZERO,
                achievement_rate=ZERO,
                record_count=0,
                window_start=start,
                window_end=end,
                stale=True,
            )

        achieved = sum((normalize(record) for record in records), ZERO)
        achieved = round_money(achieved)
        rate = round_money(compute_rate(achieved, to_decimal(target.target_amount)))

        logger.debug(
            "Target %s: achieved %s (excl. VAT) from %d invoices in [%s, %s]",
            getattr(target, "pk", None), achieved, len(records), start, end,
        )
        return AchievementResult(
            achieved_amount=achieved,
            achievement_rate=rate,
            record_count=len(records),
            records=records,
            window_start=start,
            window_end=end,
        )

    def details(self, target, today: date | None = None) -> dict:
        """Per-invoice net/VAT breakdown plus a summary, newest invoice first."""
        result = self.compute(target, today=today)
        invoices = []
        for record in sorted(result.records, key=lambda r: r.doc_date, reverse=True):
            net, vat = vat_breakdown(record)
            invoices.append(
                {
                    "id": getattr(record, "pk", None),
                    "doc_number": getattr(record, "doc_number", ""),
                    "doc_date": record.doc_date,
                    "gross_total": round_money(to_decimal(getattr(record, "gross_total", None)) or ZERO),
                    "net_amount": net,
                    "vat_amount": vat,
                }
            )

        count = len(invoices)
        summary = {
            "total_invoices": count,
            "total_amount": result.achieved_amount,
            "total_amount_with_vat": round_money(sum((i["gross_total"] for i in invoices), ZERO)),
            "average_invoice_value": round_money(result.achieved_amount / count) if count else ZERO,
            "largest_invoice": max((i["net_amount"] for i in invoices), default=ZERO),
            "most_recent_invoice": invoices[0]["doc_date"] if invoices else None,
            "achievement_rate": result.achievement_rate,
            "total_vat": round_money(sum((i["vat_amount"] for i in invoices), ZERO)),
        }
        return {
            "window_start": result.window_start,
            "window_end": result.window_end,
            "stale": result.stale,
            "invoices": invoices,
            "summary": summary,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load_records(self, customer_code: str, start: date, end: date) -> list:
        # Savepoint so a failed read does not poison an enclosing transaction.
        try:
            with transaction.atomic():
                return list(self.fetch_records(customer_code, start, end))
        except Exception as exc:
            raise ComputationUnavailable(str(exc) or exc.__class__.__name__) from exc
