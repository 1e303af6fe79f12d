"""Read/write services for the invoice store."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import QuerySet

from sales.models import Invoice, InvoiceLine

logger = logging.getLogger(__name__)


def find_invoices_for_customer(customer_code: str, start: date, end: date) -> QuerySet:
    """Invoices of ``customer_code`` dated within ``[start, end]`` (both inclusive)."""
    return (
        Invoice.objects.filter(
            customer_code=customer_code,
            doc_date__gte=start,
            doc_date__lte=end,
        )
        .prefetch_related("lines")
        .order_by("-doc_date", "-created_at")
    )


@transaction.atomic
def record_invoice(
    *,
    doc_number: str,
    customer_code: str,
    doc_date: date,
    gross_total: Decimal | None,
    vat_amount: Decimal | None = None,
    vat_percent: Decimal | None = None,
    lines: list[dict] | None = None,
) -> Invoice:
    """Persist a completed invoice and its lines in one transaction.

    Parameters
    ----------
    lines : list of dict, optional
        Each dict carries ``quantity`` and ``unit_price_excl_vat`` and an
        optional ``description``.

    Returns
    -------
    Invoice
    """
    if not doc_number:
        raise ValueError("Le numero de document est obligatoire.")
    if not customer_code:
        raise ValueError("Le code client est obligatoire.")

    invoice = Invoice.objects.create(
        doc_number=doc_number,
        customer_code=customer_code,
        doc_date=doc_date,
        gross_total=gross_total,
        vat_amount=vat_amount,
        vat_percent=vat_percent,
    )
    InvoiceLine.objects.bulk_create(
        [
            InvoiceLine(
                invoice=invoice,
                description=line.get("description", ""),
                quantity=Decimal(str(line.get("quantity", 1))),
                unit_price_excl_vat=Decimal(str(line.get("unit_price_excl_vat", 0))),
            )
            for line in (lines or [])
        ]
    )
    logger.info(
        "Invoice %s recorded for customer %s (%s lines)",
        doc_number, customer_code, len(lines or []),
    )
    return invoice
