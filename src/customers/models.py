"""Models for the customers app."""
from django.conf import settings
from django.db import models

from core.models import TimeStampedModel


class Customer(TimeStampedModel):
    """A customer account, identified by the external ERP card code."""

    code = models.CharField(
        "code client",
        max_length=50,
        unique=True,
        help_text="Identifiant du client dans l'ERP (CardCode).",
    )
    name = models.CharField("raison sociale", max_length=200)
    email = models.EmailField("e-mail", blank=True, default="")
    phone = models.CharField("telephone", max_length=30, blank=True, default="")
    assigned_agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="assigned_customers",
        verbose_name="commercial attitre",
    )
    is_active = models.BooleanField("actif", default=True)
    notes = models.TextField("notes", blank=True, default="")

    class Meta:
        verbose_name = "client"
        verbose_name_plural = "clients"
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.code})"
