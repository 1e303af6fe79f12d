"""Models for the customer revenue targets module."""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from core.models import TimeStampedModel


class CustomerTarget(TimeStampedModel):
    """Revenue goal for one customer, owned by exactly one sales agent.

    ``achieved_amount`` / ``achievement_rate`` and the contributions are a
    cache. The achievement engine recomputes them from invoices on every read
    that serves a user; listings may surface the cached values.
    """

    class PeriodKind(models.TextChoices):
        MONTHLY = "monthly", "Mensuel"
        QUARTERLY = "quarterly", "Trimestriel"
        YEARLY = "yearly", "Annuel"

    class Status(models.TextChoices):
        ACTIVE = "active", "Actif"
        COMPLETED = "completed", "Atteint"
        EXPIRED = "expired", "Expire"

    # Subject
    customer_code = models.CharField("code client", max_length=50, db_index=True)
    customer_name = models.CharField("nom client", max_length=200)
    sales_agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="customer_targets",
        verbose_name="commercial",
    )

    # Goal
    target_amount = models.DecimalField(
        "objectif HT",
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    client_existing_average = models.DecimalField(
        "moyenne existante du client",
        max_digits=14,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Base historique exclue du calcul des commissions.",
    )

    # Period configuration
    period_kind = models.CharField(
        "periodicite",
        max_length=20,
        choices=PeriodKind.choices,
        default=PeriodKind.MONTHLY,
    )
    is_recurring = models.BooleanField("recurrent", default=True)
    current_period_start = models.DateField("debut de periode", null=True, blank=True)
    current_period_end = models.DateField("fin de periode", null=True, blank=True, db_index=True)
    legacy_deadline = models.DateField(
        "echeance (historique)",
        null=True,
        blank=True,
        help_text="Echeance des objectifs crees avant le suivi par periode.",
    )

    status = models.CharField(
        "statut",
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )

    # Progress snapshot (cache)
    achieved_amount = models.DecimalField(
        "realise HT",
        max_digits=14,
        decimal_places=2,
        default=Decimal("0"),
    )
    achievement_rate = models.DecimalField(
        "taux de realisation (%)",
        max_digits=9,
        decimal_places=2,
        default=Decimal("0"),
    )
    last_recalculated_at = models.DateTimeField("recalcule le", null=True, blank=True)
    achievement_stale = models.BooleanField(
        "realisation indisponible",
        default=False,
        help_text="Le dernier calcul n'a pas pu lire les factures.",
    )

    # Audit
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customer_targets_created",
        verbose_name="cree par",
    )
    notes = models.TextField("notes", blank=True, default="")

    class Meta:
        verbose_name = "objectif client"
        verbose_name_plural = "objectifs clients"
        ordering = ["current_period_end", "-created_at"]
        indexes = [
            models.Index(fields=["customer_code", "status"], name="target_customer_status_idx"),
            models.Index(fields=["sales_agent", "status"], name="target_agent_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(current_period_start__isnull=True, current_period_end__isnull=True)
                    | Q(current_period_start__isnull=False, current_period_end__isnull=False)
                ),
                name="target_period_bounds_paired",
            ),
            models.CheckConstraint(
                condition=Q(current_period_end__gte=F("current_period_start")),
                name="target_period_end_after_start",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.customer_name} ({self.customer_code}) - {self.target_amount}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (self.Status.COMPLETED, self.Status.EXPIRED)


class TargetContribution(TimeStampedModel):
    """A transactional document credited to a target in its current window."""

    class Kind(models.TextChoices):
        INVOICE = "invoice", "Facture"

    target = models.ForeignKey(
        CustomerTarget,
        on_delete=models.CASCADE,
        related_name="contributions",
        verbose_name="objectif",
    )
    invoice = models.ForeignKey(
        "sales.Invoice",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="target_contributions",
        verbose_name="facture",
    )
    doc_number = models.CharField("numero de document", max_length=50)
    amount = models.DecimalField("montant HT", max_digits=14, decimal_places=2)
    doc_date = models.DateField("date du document")
    kind = models.CharField(
        "type",
        max_length=20,
        choices=Kind.choices,
        default=Kind.INVOICE,
    )

    class Meta:
        verbose_name = "contribution"
        verbose_name_plural = "contributions"
        ordering = ["doc_date", "created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["target", "invoice"],
                name="uniq_contribution_per_invoice",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.doc_number}: {self.amount}"


class TargetPeriodHistory(TimeStampedModel):
    """Frozen performance of a recurring target for a closed period."""

    target = models.ForeignKey(
        CustomerTarget,
        on_delete=models.CASCADE,
        related_name="history",
        verbose_name="objectif",
    )
    period_label = models.CharField("periode", max_length=10)  # "2024-01", "2024-Q2", "2024"
    period_start = models.DateField("debut")
    period_end = models.DateField("fin")
    target_amount = models.DecimalField("objectif HT", max_digits=14, decimal_places=2)
    achieved_amount = models.DecimalField("realise HT", max_digits=14, decimal_places=2)
    achievement_rate = models.DecimalField("taux (%)", max_digits=9, decimal_places=2)
    record_count = models.PositiveIntegerField("nb documents", default=0)

    class Meta:
        verbose_name = "historique de periode"
        verbose_name_plural = "historiques de periode"
        ordering = ["-period_start"]
        constraints = [
            models.UniqueConstraint(
                fields=["target", "period_start"],
                name="uniq_target_period_history",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.target_id} {self.period_label}: {self.achievement_rate}%"
