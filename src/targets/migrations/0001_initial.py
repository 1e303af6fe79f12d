import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("sales", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CustomerTarget",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                ("customer_code", models.CharField(db_index=True, max_length=50, verbose_name="code client")),
                ("customer_name", models.CharField(max_length=200, verbose_name="nom client")),
                (
                    "target_amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.01"))],
                        verbose_name="objectif HT",
                    ),
                ),
                (
                    "client_existing_average",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        help_text="Base historique exclue du calcul des commissions.",
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                        verbose_name="moyenne existante du client",
                    ),
                ),
                (
                    "period_kind",
                    models.CharField(
                        choices=[("monthly", "Mensuel"), ("quarterly", "Trimestriel"), ("yearly", "Annuel")],
                        default="monthly",
                        max_length=20,
                        verbose_name="periodicite",
                    ),
                ),
                ("is_recurring", models.BooleanField(default=True, verbose_name="recurrent")),
                ("current_period_start", models.DateField(blank=True, null=True, verbose_name="debut de periode")),
                (
                    "current_period_end",
                    models.DateField(blank=True, db_index=True, null=True, verbose_name="fin de periode"),
                ),
                (
                    "legacy_deadline",
                    models.DateField(
                        blank=True,
                        help_text="Echeance des objectifs crees avant le suivi par periode.",
                        null=True,
                        verbose_name="echeance (historique)",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Actif"), ("completed", "Atteint"), ("expired", "Expire")],
                        db_index=True,
                        default="active",
                        max_length=20,
                        verbose_name="statut",
                    ),
                ),
                (
                    "achieved_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=14, verbose_name="realise HT"),
                ),
                (
                    "achievement_rate",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0"), max_digits=9, verbose_name="taux de realisation (%)"
                    ),
                ),
                ("last_recalculated_at", models.DateTimeField(blank=True, null=True, verbose_name="recalcule le")),
                (
                    "achievement_stale",
                    models.BooleanField(
                        default=False,
                        help_text="Le dernier calcul n'a pas pu lire les factures.",
                        verbose_name="realisation indisponible",
                    ),
                ),
                ("notes", models.TextField(blank=True, default="", verbose_name="notes")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="customer_targets_created",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="cree par",
                    ),
                ),
                (
                    "sales_agent",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="customer_targets",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="commercial",
                    ),
                ),
            ],
            options={
                "verbose_name": "objectif client",
                "verbose_name_plural": "objectifs clients",
                "ordering": ["current_period_end", "-created_at"],
                "indexes": [
                    models.Index(fields=["customer_code", "status"], name="target_customer_status_idx"),
                    models.Index(fields=["sales_agent", "status"], name="target_agent_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("current_period_end__isnull", True), ("current_period_start__isnull", True)),
                            models.Q(("current_period_end__isnull", False), ("current_period_start__isnull", False)),
                            _connector="OR",
                        ),
                        name="target_period_bounds_paired",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("current_period_end__gte", models.F("current_period_start"))),
                        name="target_period_end_after_start",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TargetContribution",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                ("doc_number", models.CharField(max_length=50, verbose_name="numero de document")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="montant HT")),
                ("doc_date", models.DateField(verbose_name="date du document")),
                (
                    "kind",
                    models.CharField(
                        choices=[("invoice", "Facture")],
                        default="invoice",
                        max_length=20,
                        verbose_name="type",
                    ),
                ),
                (
                    "invoice",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="target_contributions",
                        to="sales.invoice",
                        verbose_name="facture",
                    ),
                ),
                (
                    "target",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="contributions",
                        to="targets.customertarget",
                        verbose_name="objectif",
                    ),
                ),
            ],
            options={
                "verbose_name": "contribution",
                "verbose_name_plural": "contributions",
                "ordering": ["doc_date", "created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("target", "invoice"), name="uniq_contribution_per_invoice"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TargetPeriodHistory",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="cree le")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="modifie le")),
                ("period_label", models.CharField(max_length=10, verbose_name="periode")),
                ("period_start", models.DateField(verbose_name="debut")),
                ("period_end", models.DateField(verbose_name="fin")),
                ("target_amount", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="objectif HT")),
                ("achieved_amount", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="realise HT")),
                ("achievement_rate", models.DecimalField(decimal_places=2, max_digits=9, verbose_name="taux (%)")),
                ("record_count", models.PositiveIntegerField(default=0, verbose_name="nb documents")),
                (
                    "target",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history",
                        to="targets.customertarget",
                        verbose_name="objectif",
                    ),
                ),
            ],
            options={
                "verbose_name": "historique de periode",
                "verbose_name_plural": "historiques de periode",
                "ordering": ["-period_start"],
                "constraints": [
                    models.UniqueConstraint(fields=("target", "period_start"), name="uniq_target_period_history"),
                ],
            },
        ),
    ]
