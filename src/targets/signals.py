"""Signals: credit new invoices to customer targets."""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


def _record_now(invoice_id) -> None:
    """Best-effort local update when no worker can take the task."""
    from sales.models import Invoice
    from targets.services import record_invoice_progress

    invoice = Invoice.objects.filter(pk=invoice_id).first()
    if invoice is not None:
        record_invoice_progress(invoice)


def _queue_progress(invoice_id) -> None:
    def _dispatch() -> None:
        try:
            from targets.tasks import record_invoice_progress_task

            record_invoice_progress_task.delay(str(invoice_id))
            return
        except Exception as exc:
            logger.warning("targets async dispatch failed: %s", exc, exc_info=True)

        try:
            _record_now(invoice_id)
        except Exception as exc:
            # Never let a signal crash the invoice write.
            logger.error("targets sync progress update failed: %s", exc, exc_info=True)

    # Queue after commit so the worker reads the committed invoice and lines.
    try:
        transaction.on_commit(_dispatch)
    except Exception:
        _dispatch()


@receiver(post_save, sender="sales.Invoice", dispatch_uid="targets_invoice_progress")
def invoice_recorded(sender, instance, created, **kwargs):
    if not created or kwargs.get("raw"):
        return
    _queue_progress(instance.pk)
