"""Tax-exclusive amount extraction for heterogeneous invoices.

Strategies are tried in a fixed order of decreasing trust and the first one
that applies wins:

1. explicit VAT amount      gross - vat_amount
2. explicit VAT rate        gross / (1 + vat_percent / 100)
3. priced lines             sum(quantity * unit_price_excl_vat)
4. assumed default rate     gross / (1 + TARGET_DEFAULT_VAT_PERCENT / 100)

Amounts are not rounded here; ``round_money`` is applied where figures are
reported, so sums do not accumulate rounding error.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal | None:
    """Coerce a loosely-typed amount to Decimal, None when absent or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def round_money(value: Decimal) -> Decimal:
    return (value or ZERO).quantize(CENT, rounding=ROUND_HALF_UP)


def default_vat_percent() -> Decimal:
    return Decimal(str(getattr(settings, "TARGET_DEFAULT_VAT_PERCENT", 20)))


def _line_items(record) -> list:
    lines = getattr(record, "lines", None)
    if lines is None:
        return []
    # Django related managers expose .all(); plain records carry a list.
    if hasattr(lines, "all"):
        lines = lines.all()
    return list(lines)


def _from_vat_amount(record, gross: Decimal) -> Optional[Decimal]:
    vat_amount = to_decimal(getattr(record, "vat_amount", None))
    if vat_amount is not None and vat_amount > 0:
        return gross - vat_amount
    return None


def _from_vat_percent(record, gross: Decimal) -> Optional[Decimal]:
    vat_percent = to_decimal(getattr(record, "vat_percent", None))
    if vat_percent is not None and vat_percent > 0:
        return gross / (1 + vat_percent / HUNDRED)
    return None


def _from_lines(record, gross: Decimal) -> Optional[Decimal]:
    lines = _line_items(record)
    if not lines:
        return None
    total = ZERO
    for line in lines:
        quantity = to_decimal(getattr(line, "quantity", None)) or ZERO
        unit_price = to_decimal(getattr(line, "unit_price_excl_vat", None)) or ZERO
        total += quantity * unit_price
    return total


def _from_default_rate(record, gross: Decimal) -> Optional[Decimal]:
    return gross / (1 + default_vat_percent() / HUNDRED)


STRATEGIES: tuple[Callable[[object, Decimal], Optional[Decimal]], ...] = (
    _from_vat_amount,
    _from_vat_percent,
    _from_lines,
    _from_default_rate,
)


def normalize(record) -> Decimal:
    """Return the tax-exclusive amount of ``record`` (>= 0). Never raises."""
    gross = to_decimal(getattr(record, "gross_total", None))
    if gross is None or gross < 0:
        return ZERO
    for strategy in STRATEGIES:
        try:
            amount = strategy(record, gross)
        except Exception:
            logger.warning(
                "VAT strategy %s failed for record %s",
                strategy.__name__,
                getattr(record, "doc_number", None) or getattr(record, "pk", None),
                exc_info=True,
            )
            continue
        if amount is not None:
            return max(amount, ZERO)
    return ZERO


def vat_breakdown(record) -> tuple[Decimal, Decimal]:
    """(net, vat) of a record, both rounded for display."""
    gross = to_decimal(getattr(record, "gross_total", None)) or ZERO
    net = normalize(record)
    return round_money(net), round_money(gross - net)
