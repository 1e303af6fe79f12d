"""Celery tasks for the customer targets module."""
from __future__ import annotations

import logging

from celery import group, shared_task
from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

SWEEP_CANCEL_KEY = "targets:sweep:cancel"


def request_sweep_cancellation() -> None:
    """Ask running sweeps to stop before their next target."""
    cache.set(SWEEP_CANCEL_KEY, True, timeout=getattr(settings, "TARGET_SWEEP_CANCEL_TTL", 3600))
    logger.info("Target sweep cancellation requested")


def sweep_cancelled() -> bool:
    return bool(cache.get(SWEEP_CANCEL_KEY))


def clear_sweep_cancellation() -> None:
    cache.delete(SWEEP_CANCEL_KEY)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def record_invoice_progress_task(self, invoice_id: str):
    """Credit a freshly recorded invoice to its customer's target."""
    from sales.models import Invoice
    from targets.exceptions import TargetLockBusy
    from targets.services import apply_invoice_progress

    invoice = Invoice.objects.filter(pk=invoice_id).first()
    if invoice is None:
        logger.warning("record_invoice_progress_task: invoice %s not found", invoice_id)
        return None
    try:
        target = apply_invoice_progress(invoice)
    except TargetLockBusy as exc:
        # Lock held by another worker for this customer; try again shortly.
        raise self.retry(exc=exc, countdown=5)
    except Exception as exc:
        logger.error("Error updating customer target from invoice %s: %s", invoice_id, exc, exc_info=True)
        return None
    return str(target.pk) if target is not None else None


@shared_task
def rollover_recurring_targets():
    """Scheduled daily (Celery Beat): start the new period of every lapsed recurring target."""
    from targets.services import rollover_sweep

    try:
        result = rollover_sweep(should_stop=sweep_cancelled)
    finally:
        clear_sweep_cancellation()
    logger.info("rollover_recurring_targets: %s", result.as_dict())
    return result.as_dict()


@shared_task
def expire_lapsed_targets_task():
    """Scheduled daily (Celery Beat): settle non-recurring targets whose window is over."""
    from targets.services import expire_lapsed_targets

    try:
        result = expire_lapsed_targets(should_stop=sweep_cancelled)
    finally:
        clear_sweep_cancellation()
    logger.info("expire_lapsed_targets_task: %s", result.as_dict())
    return result.as_dict()


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def recalculate_target_task(self, target_id: str):
    """Recompute one target from invoices."""
    from targets.models import CustomerTarget
    from targets.services import recalculate_target

    if sweep_cancelled():
        logger.debug("recalculate_target_task: cancelled before target %s", target_id)
        return None
    target = CustomerTarget.objects.filter(pk=target_id).first()
    if target is None:
        return None
    result = recalculate_target(target)
    return {"target_id": target_id, "stale": result.stale, "achievement_rate": str(result.achievement_rate)}


@shared_task
def recalculate_active_targets():
    """Scheduled nightly: reconcile every active target with the invoice store.

    One task per target; the worker pool bounds how many run at once.
    Returns the number of tasks queued, not how many succeeded: each
    ``recalculate_target_task`` result carries its own outcome, and a failing
    target only fails its own task.
    """
    from targets.models import CustomerTarget

    clear_sweep_cancellation()
    target_ids = [
        str(pk)
        for pk in CustomerTarget.objects.filter(status=CustomerTarget.Status.ACTIVE).values_list("pk", flat=True)
    ]
    if not target_ids:
        return 0
    group(recalculate_target_task.s(target_id) for target_id in target_ids).apply_async()
    logger.info("Queued recalculation of %d active targets", len(target_ids))
    return len(target_ids)
