"""Business-logic / service functions for customer targets."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from django.core.exceptions import ValidationError
from django.db import connection, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from accounts.models import User
from accounts.services import is_target_holder
from customers.services import find_by_code
from targets import periods
from targets.engine import AchievementCalculator, AchievementResult
from targets.exceptions import InvalidTarget, NotRecurring, TargetLockBusy, TargetNotFound
from targets.models import CustomerTarget, TargetContribution, TargetPeriodHistory
from targets.normalizer import ZERO, normalize, round_money, to_decimal

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"target_amount", "notes", "status", "is_recurring", "period_kind"})

PROGRESS_FIELDS = [
    "achieved_amount",
    "achievement_rate",
    "achievement_stale",
    "last_recalculated_at",
    "status",
    "updated_at",
]


@dataclass(frozen=True)
class SweepResult:
    processed: int = 0
    failed: int = 0
    cancelled: bool = False

    def as_dict(self) -> dict:
        return {"processed": self.processed, "failed": self.failed, "cancelled": self.cancelled}


def _today(today: date | None) -> date:
    return today or timezone.localdate()


def _get_target(target_id, *, for_update: bool = False) -> CustomerTarget:
    queryset = CustomerTarget.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=target_id)
    except (CustomerTarget.DoesNotExist, ValidationError, ValueError):
        raise TargetNotFound(f"Objectif introuvable: {target_id}") from None


def _validate_target_amount(value) -> Decimal:
    amount = to_decimal(value)
    if amount is None or amount <= 0:
        raise InvalidTarget("Le montant de l'objectif doit etre strictement positif.")
    return amount


def _validate_period_kind(value) -> str:
    if value not in periods.PERIOD_KINDS:
        raise InvalidTarget(f"Periodicite invalide: {value!r}.")
    return value


def _resolve_agent(sales_agent) -> Optional[User]:
    if sales_agent is None or sales_agent == "":
        return None
    if isinstance(sales_agent, User):
        return sales_agent
    try:
        return User.objects.filter(pk=sales_agent).first()
    except (ValidationError, ValueError):
        return None


def _apply_status_transition(target: CustomerTarget, today: date) -> None:
    _, window_end = periods.resolve_window(target, today)
    new_status = periods.evaluate_status(
        target.status,
        is_recurring=target.is_recurring,
        achieved=target.achieved_amount,
        target_amount=target.target_amount,
        window_end=window_end,
        today=today,
    )
    if new_status != target.status:
        logger.info("Target %s: %s -> %s", target.pk, target.status, new_status)
        target.status = new_status


# ---------------------------------------------------------------------------
# create / update / delete
# ---------------------------------------------------------------------------

def create_target(
    *,
    customer_code: str,
    customer_name: str,
    sales_agent,
    target_amount,
    period_kind: str = periods.MONTHLY,
    is_recurring: bool = True,
    client_existing_average=0,
    notes: str = "",
    created_by=None,
    today: date | None = None,
) -> CustomerTarget:
    """Create an active target whose window is the current period of ``period_kind``.

    Parameters
    ----------
    sales_agent : accounts.models.User or user id
        Must be an active SALES user.

    Raises
    ------
    InvalidTarget
        If a required field is missing or not positive, or the agent cannot
        hold targets.
    """
    customer_code = (customer_code or "").strip()
    customer_name = (customer_name or "").strip()
    if not customer_code:
        raise InvalidTarget("Le code client est obligatoire.")
    if not customer_name:
        raise InvalidTarget("Le nom du client est obligatoire.")

    agent = _resolve_agent(sales_agent)
    if agent is None:
        raise InvalidTarget("Le commercial est obligatoire.")
    if not is_target_holder(agent):
        raise InvalidTarget("Commercial invalide: seul un commercial actif peut porter un objectif.")

    amount = _validate_target_amount(target_amount)
    average = to_decimal(client_existing_average)
    if average is None or average < 0:
        raise InvalidTarget("La moyenne existante du client doit etre positive ou nulle.")
    period_kind = _validate_period_kind(period_kind)

    start, end = periods.bounds_for(period_kind, _today(today))
    target = CustomerTarget.objects.create(
        customer_code=customer_code,
        customer_name=customer_name,
        sales_agent=agent,
        target_amount=amount,
        client_existing_average=average,
        period_kind=period_kind,
        is_recurring=bool(is_recurring),
        current_period_start=start,
        current_period_end=end,
        legacy_deadline=end,
        status=CustomerTarget.Status.ACTIVE,
        achieved_amount=ZERO,
        achievement_rate=ZERO,
        created_by=created_by,
        notes=notes or "",
    )
    logger.info(
        "Target %s created for customer %s (agent=%s, %s %s, [%s, %s])",
        target.pk, customer_code, agent.pk, amount, period_kind, start, end,
    )
    return target


def update_target(target_id, patch: dict, *, today: date | None = None) -> CustomerTarget:
    """Apply a partial update.

    Changing ``period_kind`` restarts the window at the current period of the
    new kind; nothing is prorated. Cached progress and contributions of the
    old window are dropped and rebuilt from the invoices of the new one.
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidTarget(f"Champs non modifiables: {', '.join(sorted(unknown))}.")
    today = _today(today)

    with transaction.atomic():
        target = _get_target(target_id, for_update=True)

        if "target_amount" in patch:
            target.target_amount = _validate_target_amount(patch["target_amount"])
            target.achievement_rate = round_money(
                periods.compute_rate(target.achieved_amount, target.target_amount)
            )
        if "notes" in patch:
            target.notes = patch["notes"] or ""
        if "status" in patch:
            if patch["status"] not in CustomerTarget.Status.values:
                raise InvalidTarget(f"Statut invalide: {patch['status']!r}.")
            target.status = patch["status"]
        if "is_recurring" in patch:
            if not isinstance(patch["is_recurring"], bool):
                raise InvalidTarget("Le champ recurrent doit etre un booleen.")
            target.is_recurring = patch["is_recurring"]
        kind_changed = "period_kind" in patch and patch["period_kind"] != target.period_kind
        if kind_changed:
            target.period_kind = _validate_period_kind(patch["period_kind"])
            start, end = periods.bounds_for(target.period_kind, today)
            target.current_period_start = start
            target.current_period_end = end
            target.legacy_deadline = end
            # Progress of the old window does not carry over.
            target.achieved_amount = ZERO
            target.achievement_rate = ZERO
            target.achievement_stale = False
            target.contributions.all().delete()
            target.save()
            recalculate_target(target, today=today)

        # An explicit status from the caller wins over the state machine.
        if "status" in patch:
            target.status = patch["status"]
        else:
            _apply_status_transition(target, today)

        target.save()

    logger.info("Target %s updated (%s)", target.pk, ", ".join(sorted(patch)))
    return target


def delete_target(target_id) -> None:
    """Administrative hard delete."""
    with transaction.atomic():
        target = _get_target(target_id, for_update=True)
        target.delete()
    logger.info("Target %s deleted", target_id)


# ---------------------------------------------------------------------------
# incremental progress
# ---------------------------------------------------------------------------

def _make_lock_key(customer_code: str) -> int:
    raw = f"customer-target:{customer_code}"
    hex_digest = hashlib.md5(raw.encode()).hexdigest()[:8]
    return int(hex_digest, 16) % (2**31)


def _acquire_customer_lock(customer_code: str) -> None:
    """Serialize progress updates per customer (PostgreSQL only)."""
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute("SELECT pg_try_advisory_xact_lock(%s)", [_make_lock_key(customer_code)])
        row = cursor.fetchone()
    if not (row and row[0]):
        raise TargetLockBusy(f"Progress lock busy for customer {customer_code}")


def apply_invoice_progress(invoice, *, today: date | None = None) -> CustomerTarget | None:
    """Credit ``invoice`` to the matching active target of its customer.

    Only targets owned by the customer's assigned agent and whose window
    contains the invoice date qualify. When several do, the most recently
    created one is credited so one invoice is never counted twice.

    Returns the credited target, or None when nothing qualified.

    Raises
    ------
    TargetLockBusy
        Another worker is updating the same customer.
    """
    today = _today(today)
    customer_code = (getattr(invoice, "customer_code", "") or "").strip()
    if not customer_code or getattr(invoice, "gross_total", None) is None:
        logger.info("Insufficient invoice data to update customer targets (invoice=%s)", invoice.pk)
        return None

    customer = find_by_code(customer_code)
    if customer is None or customer.assigned_agent_id is None:
        logger.info("No assigned sales agent found for customer %s", customer_code)
        return None

    doc_date = invoice.doc_date or today

    with transaction.atomic():
        _acquire_customer_lock(customer_code)

        candidates = list(
            CustomerTarget.objects.select_for_update().filter(
                customer_code=customer_code,
                sales_agent_id=customer.assigned_agent_id,
                status=CustomerTarget.Status.ACTIVE,
            )
        )
        in_window = []
        for candidate in candidates:
            start, end = periods.resolve_window(candidate, today)
            if start <= doc_date <= end:
                in_window.append(candidate)

        if not in_window:
            logger.info(
                "No active target in period for customer %s on %s", customer_code, doc_date,
            )
            return None

        target = max(in_window, key=lambda t: t.created_at)

        if target.contributions.filter(invoice_id=invoice.pk).exists():
            logger.info("Invoice %s already credited to target %s", invoice.pk, target.pk)
            return target

        amount = normalize(invoice)
        TargetContribution.objects.create(
            target=target,
            invoice_id=invoice.pk,
            doc_number=getattr(invoice, "doc_number", "") or "",
            amount=round_money(amount),
            doc_date=doc_date,
            kind=TargetContribution.Kind.INVOICE,
        )
        target.achieved_amount = round_money(target.achieved_amount + amount)
        target.achievement_rate = round_money(
            periods.compute_rate(target.achieved_amount, target.target_amount)
        )
        _apply_status_transition(target, today)
        target.save(update_fields=["achieved_amount", "achievement_rate", "status", "updated_at"])

    logger.info(
        "Target %s credited %s from invoice %s, achieved %s (%s%%)",
        target.pk, round_money(amount), invoice.pk, target.achieved_amount, target.achievement_rate,
    )
    return target


def record_invoice_progress(invoice, *, today: date | None = None) -> CustomerTarget | None:
    """Best-effort wrapper around ``apply_invoice_progress``: never raises."""
    try:
        return apply_invoice_progress(invoice, today=today)
    except Exception as exc:
        # Target bookkeeping must never fail the recording of a sale.
        logger.error(
            "Error updating customer target progress from invoice %s: %s",
            getattr(invoice, "pk", None), exc, exc_info=True,
        )
        return None


# ---------------------------------------------------------------------------
# recalculation
# ---------------------------------------------------------------------------

def recalculate_target(
    target: CustomerTarget,
    *,
    today: date | None = None,
    calculator: AchievementCalculator | None = None,
) -> AchievementResult:
    """Replace the cached progress of ``target`` with a fresh computation.

    When the invoice store cannot be read the previous cache is kept and
    only flagged as stale.
    """
    today = _today(today)
    calculator = calculator or AchievementCalculator()

    with transaction.atomic():
        locked = _get_target(target.pk, for_update=True)
        result = calculator.compute(locked, today=today)

        if result.stale:
            locked.achievement_stale = True
        else:
            locked.achieved_amount = result.achieved_amount
            locked.achievement_rate = result.achievement_rate
            locked.achievement_stale = False
            locked.last_recalculated_at = timezone.now()
            locked.contributions.all().delete()
            TargetContribution.objects.bulk_create(
                [
                    TargetContribution(
                        target=locked,
                        invoice_id=getattr(record, "pk", None),
                        doc_number=getattr(record, "doc_number", "") or "",
                        amount=round_money(normalize(record)),
                        doc_date=record.doc_date,
                        kind=TargetContribution.Kind.INVOICE,
                    )
                    for record in result.records
                ]
            )
            _apply_status_transition(locked, today)
        locked.save(update_fields=PROGRESS_FIELDS)

    for field_name in PROGRESS_FIELDS:
        setattr(target, field_name, getattr(locked, field_name))
    return result


def recalculate_targets(
    queryset: QuerySet | None = None,
    *,
    today: date | None = None,
    should_stop: Callable[[], bool] | None = None,
    calculator: AchievementCalculator | None = None,
) -> SweepResult:
    """Bulk reconciliation; one failing target does not stop the batch."""
    today = _today(today)
    if queryset is None:
        queryset = CustomerTarget.objects.filter(status=CustomerTarget.Status.ACTIVE)
    calculator = calculator or AchievementCalculator()

    processed = failed = 0
    for target in list(queryset):
        if should_stop is not None and should_stop():
            logger.info("Recalculation cancelled after %d targets", processed)
            return SweepResult(processed, failed, cancelled=True)
        try:
            recalculate_target(target, today=today, calculator=calculator)
            processed += 1
        except Exception:
            failed += 1
            logger.exception("Recalculation failed for target=%s", target.pk)

    logger.info("Recalculated %d targets (%d failed)", processed, failed)
    return SweepResult(processed, failed)


def get_achievement(target_id, *, today: date | None = None) -> dict:
    """Fresh achievement of a target; also refreshes its cache and status."""
    target = _get_target(target_id)
    result = recalculate_target(target, today=today)
    payload = result.as_dict()
    payload["target_id"] = target.pk
    payload["status"] = target.status
    return payload


# ---------------------------------------------------------------------------
# rollover
# ---------------------------------------------------------------------------

def rollover_candidates(today: date) -> QuerySet:
    """Recurring active targets whose window (or legacy deadline) is over."""
    return CustomerTarget.objects.filter(
        is_recurring=True,
        status=CustomerTarget.Status.ACTIVE,
    ).filter(
        Q(current_period_end__lt=today)
        | Q(current_period_end__isnull=True, legacy_deadline__lt=today)
    )


def _archive_period(
    target: CustomerTarget,
    start: date,
    end: date,
    today: date,
    calculator: AchievementCalculator,
) -> TargetPeriodHistory:
    result = calculator.compute(target, today=today)
    if result.stale:
        achieved, rate = target.achieved_amount, target.achievement_rate
        record_count = target.contributions.count()
    else:
        achieved, rate, record_count = result.achieved_amount, result.achievement_rate, result.record_count

    history, created = TargetPeriodHistory.objects.get_or_create(
        target=target,
        period_start=start,
        defaults={
            "period_label": periods.period_label(target.period_kind, start),
            "period_end": end,
            "target_amount": target.target_amount,
            "achieved_amount": achieved,
            "achievement_rate": rate,
            "record_count": record_count,
        },
    )
    if not created:
        logger.debug("Period %s of target %s already archived", history.period_label, target.pk)
    return history


def _rollover(
    target_id,
    *,
    today: date,
    calculator: AchievementCalculator,
    only_if_due: bool,
) -> tuple[CustomerTarget, bool]:
    with transaction.atomic():
        target = _get_target(target_id, for_update=True)
        if not target.is_recurring:
            raise NotRecurring("Seuls les objectifs recurrents peuvent passer a une nouvelle periode.")

        start, end = periods.resolve_window(target, today)
        if only_if_due and end >= today:
            return target, False
        new_start, new_end = periods.bounds_for(target.period_kind, today)
        if (start, end) == (new_start, new_end):
            return target, False
        if end < today:
            _archive_period(target, start, end, today, calculator)

        target.current_period_start = new_start
        target.current_period_end = new_end
        target.legacy_deadline = new_end
        target.achieved_amount = ZERO
        target.achievement_rate = ZERO
        target.achievement_stale = False
        target.status = CustomerTarget.Status.ACTIVE
        target.contributions.all().delete()
        target.save()

    logger.info("Target %s rolled over to [%s, %s]", target.pk, new_start, new_end)
    return target, True


def start_new_period(
    target: CustomerTarget,
    *,
    today: date | None = None,
    calculator: AchievementCalculator | None = None,
) -> CustomerTarget:
    """Move a recurring target into the period containing ``today``.

    The window that just ended is archived first; calling this again within
    the new period writes no second history row.

    Raises
    ------
    NotRecurring
    """
    if not target.is_recurring:
        raise NotRecurring("Seuls les objectifs recurrents peuvent passer a une nouvelle periode.")
    rolled, _ = _rollover(
        target.pk,
        today=_today(today),
        calculator=calculator or AchievementCalculator(),
        only_if_due=False,
    )
    return rolled


def rollover_target(target_id, *, today: date | None = None) -> CustomerTarget:
    """Single-target rollover on demand."""
    target = _get_target(target_id)
    return start_new_period(target, today=today)


def rollover_sweep(
    today: date | None = None,
    *,
    should_stop: Callable[[], bool] | None = None,
    calculator: AchievementCalculator | None = None,
) -> SweepResult:
    """Roll over every recurring target whose period has ended.

    Safe to re-run: rolled-over targets no longer match the selection.
    ``should_stop`` is polled before each target; in-flight work finishes.
    """
    today = _today(today)
    calculator = calculator or AchievementCalculator()
    target_ids = list(rollover_candidates(today).values_list("pk", flat=True))
    logger.info("Rolling over %d targets to new period", len(target_ids))

    processed = failed = 0
    for target_id in target_ids:
        if should_stop is not None and should_stop():
            logger.info("Rollover sweep cancelled after %d targets", processed)
            return SweepResult(processed, failed, cancelled=True)
        try:
            _, rolled = _rollover(target_id, today=today, calculator=calculator, only_if_due=True)
        except Exception:
            failed += 1
            logger.exception("Rollover failed for target=%s", target_id)
            continue
        if rolled:
            processed += 1

    logger.info("Rollover sweep done: %d processed, %d failed", processed, failed)
    return SweepResult(processed, failed)


def expire_lapsed_targets(
    today: date | None = None,
    *,
    should_stop: Callable[[], bool] | None = None,
    calculator: AchievementCalculator | None = None,
) -> SweepResult:
    """Settle non-recurring targets whose window is over as completed or expired.

    Each target is recomputed from invoices first, so a target that reached
    100 % without anybody reading it still ends up completed.
    """
    today = _today(today)
    calculator = calculator or AchievementCalculator()
    lapsed = CustomerTarget.objects.filter(
        is_recurring=False,
        status=CustomerTarget.Status.ACTIVE,
    ).filter(
        Q(current_period_end__lt=today)
        | Q(current_period_end__isnull=True, legacy_deadline__lt=today)
    )

    processed = failed = 0
    for target in list(lapsed):
        if should_stop is not None and should_stop():
            return SweepResult(processed, failed, cancelled=True)
        try:
            result = recalculate_target(target, today=today, calculator=calculator)
        except Exception:
            failed += 1
            logger.exception("Status evaluation failed for target=%s", target.pk)
            continue
        if result.stale:
            failed += 1
        elif target.is_terminal:
            processed += 1

    logger.info("Lapsed targets settled: %d processed, %d failed", processed, failed)
    return SweepResult(processed, failed)
