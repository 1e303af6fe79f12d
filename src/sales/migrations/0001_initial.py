import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                (
                    "doc_number",
                    models.CharField(
                        help_text="Numero du document dans l'ERP (DocEntry).",
                        max_length=50,
                        unique=True,
                        verbose_name="numero de document",
                    ),
                ),
                ("customer_code", models.CharField(db_index=True, max_length=50, verbose_name="code client")),
                ("doc_date", models.DateField(db_index=True, verbose_name="date du document")),
                (
                    "gross_total",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="total TTC"),
                ),
                (
                    "vat_amount",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="montant TVA"),
                ),
                (
                    "vat_percent",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, verbose_name="taux TVA (%)"),
                ),
            ],
            options={
                "verbose_name": "facture",
                "verbose_name_plural": "factures",
                "ordering": ["-doc_date", "-created_at"],
                "indexes": [models.Index(fields=["customer_code", "doc_date"], name="invoice_customer_date_idx")],
            },
        ),
        migrations.CreateModel(
            name="InvoiceLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                ("description", models.CharField(blank=True, default="", max_length=255, verbose_name="designation")),
                (
                    "quantity",
                    models.DecimalField(decimal_places=3, default=Decimal("1"), max_digits=12, verbose_name="quantite"),
                ),
                (
                    "unit_price_excl_vat",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=14, verbose_name="prix unitaire HT"
                    ),
                ),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="sales.invoice",
                        verbose_name="facture",
                    ),
                ),
            ],
            options={
                "verbose_name": "ligne de facture",
                "verbose_name_plural": "lignes de facture",
                "ordering": ["created_at"],
            },
        ),
    ]
