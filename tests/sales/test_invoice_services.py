from datetime import date
from decimal import Decimal

import pytest

from sales.models import Invoice
from sales.services import find_invoices_for_customer, record_invoice


@pytest.mark.django_db
class TestRecordInvoice:
    def test_persists_invoice_and_lines(self):
        invoice = record_invoice(
            doc_number="FAC-0001",
            customer_code="C001",
            doc_date=date(2024, 3, 1),
            gross_total=Decimal("150.00"),
            lines=[
                {"description": "Cable", "quantity": 2, "unit_price_excl_vat": "50.00"},
                {"quantity": "1", "unit_price_excl_vat": "25"},
            ],
        )

        assert Invoice.objects.get(pk=invoice.pk).doc_number == "FAC-0001"
        lines = list(invoice.lines.order_by("unit_price_excl_vat"))
        assert [line.unit_price_excl_vat for line in lines] == [Decimal("25.00"), Decimal("50.00")]
        assert lines[1].quantity == Decimal("2.000")

    @pytest.mark.parametrize("field", ["doc_number", "customer_code"])
    def test_requires_identifiers(self, field):
        params = {
            "doc_number": "FAC-0002",
            "customer_code": "C001",
            "doc_date": date(2024, 3, 1),
            "gross_total": Decimal("10"),
        }
        params[field] = ""
        with pytest.raises(ValueError):
            record_invoice(**params)
        assert Invoice.objects.count() == 0


@pytest.mark.django_db
def test_find_invoices_uses_closed_interval(make_invoice):
    make_invoice(doc_date=date(2024, 2, 29))
    first = make_invoice(doc_date=date(2024, 3, 1))
    last = make_invoice(doc_date=date(2024, 3, 31))
    make_invoice(doc_date=date(2024, 4, 1))
    make_invoice(customer_code="C002", doc_date=date(2024, 3, 15))

    found = list(find_invoices_for_customer("C001", date(2024, 3, 1), date(2024, 3, 31)))

    assert [invoice.pk for invoice in found] == [last.pk, first.pk]
