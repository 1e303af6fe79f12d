"""Models for the sales app: completed invoices synced from the ERP."""
from decimal import Decimal

from django.db import models

from core.models import TimeStampedModel


# ---------------------------------------------------------------------------
# Invoice
# ---------------------------------------------------------------------------

class Invoice(TimeStampedModel):
    """A completed sales document.

    Tax metadata is whatever the ERP exported: some documents carry the VAT
    amount, some only a VAT rate, some only priced lines, some nothing.
    """

    doc_number = models.CharField(
        "numero de document",
        max_length=50,
        unique=True,
        help_text="Numero du document dans l'ERP (DocEntry).",
    )
    customer_code = models.CharField(
        "code client",
        max_length=50,
        db_index=True,
    )
    doc_date = models.DateField("date du document", db_index=True)
    gross_total = models.DecimalField(
        "total TTC",
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )
    vat_amount = models.DecimalField(
        "montant TVA",
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )
    vat_percent = models.DecimalField(
        "taux TVA (%)",
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
    )

    class Meta:
        verbose_name = "facture"
        verbose_name_plural = "factures"
        ordering = ["-doc_date", "-created_at"]
        indexes = [
            models.Index(fields=["customer_code", "doc_date"], name="invoice_customer_date_idx"),
        ]

    def __str__(self):
        return f"Facture {self.doc_number} ({self.customer_code})"


class InvoiceLine(TimeStampedModel):
    """A priced line on an invoice, amounts excluding VAT."""

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="lines",
        verbose_name="facture",
    )
    description = models.CharField("designation", max_length=255, blank=True, default="")
    quantity = models.DecimalField(
        "quantite",
        max_digits=12,
        decimal_places=3,
        default=Decimal("1"),
    )
    unit_price_excl_vat = models.DecimalField(
        "prix unitaire HT",
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    class Meta:
        verbose_name = "ligne de facture"
        verbose_name_plural = "lignes de facture"
        ordering = ["created_at"]

    def __str__(self):
        return f"{self.description or self.invoice_id} x{self.quantity}"
