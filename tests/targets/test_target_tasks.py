from datetime import date
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace

import pytest
from celery.exceptions import Retry
from django.core.management import call_command
from django.utils import timezone

from sales.services import record_invoice
from targets import services, tasks
from targets.exceptions import TargetLockBusy
from targets.models import CustomerTarget, TargetPeriodHistory
from targets.services import create_target


def _create(agent, **overrides):
    params = {
        "customer_code": "C001",
        "customer_name": "Acme SARL",
        "sales_agent": agent,
        "target_amount": Decimal("1000"),
    }
    params.update(overrides)
    return create_target(**params)


def _record_today(doc_number="FAC-T-0001", gross_total=Decimal("120")):
    return record_invoice(
        doc_number=doc_number,
        customer_code="C001",
        doc_date=timezone.localdate(),
        gross_total=gross_total,
        vat_amount=Decimal("20"),
    )


@pytest.mark.django_db
class TestInvoiceSignal:
    def test_new_invoice_is_credited_after_commit(self, customer, sales_user, django_capture_on_commit_callbacks):
        target = _create(sales_user)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            _record_today()

        assert len(callbacks) == 1
        target.refresh_from_db()
        assert target.achieved_amount == Decimal("100.00")

    def test_nothing_happens_before_commit(self, customer, sales_user, django_capture_on_commit_callbacks):
        target = _create(sales_user)

        with django_capture_on_commit_callbacks(execute=False):
            _record_today()

        target.refresh_from_db()
        assert target.achieved_amount == Decimal("0")

    def test_updates_do_not_credit_again(self, customer, sales_user, django_capture_on_commit_callbacks):
        target = _create(sales_user)
        with django_capture_on_commit_callbacks(execute=True):
            invoice = _record_today()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            invoice.save()

        assert callbacks == []
        target.refresh_from_db()
        assert target.contributions.count() == 1

    def test_falls_back_to_sync_update_when_broker_down(
        self, customer, sales_user, monkeypatch, django_capture_on_commit_callbacks,
    ):
        target = _create(sales_user)

        def broker_down(*args, **kwargs):
            raise ConnectionError("broker unreachable")

        monkeypatch.setattr(tasks.record_invoice_progress_task, "delay", broker_down)

        with django_capture_on_commit_callbacks(execute=True):
            _record_today()

        target.refresh_from_db()
        assert target.achieved_amount == Decimal("100.00")

    def test_target_failure_never_breaks_invoice_write(
        self, customer, sales_user, monkeypatch, django_capture_on_commit_callbacks,
    ):
        _create(sales_user)

        def broken(invoice, today=None):
            raise RuntimeError("bookkeeping failed")

        monkeypatch.setattr("targets.services.apply_invoice_progress", broken)

        with django_capture_on_commit_callbacks(execute=True):
            invoice = _record_today()

        assert invoice.pk is not None


@pytest.mark.django_db
class TestTasks:
    def test_progress_task_unknown_invoice(self):
        assert tasks.record_invoice_progress_task.delay("00000000-0000-0000-0000-000000000000").get() is None

    def test_progress_task_returns_credited_target(self, customer, sales_user):
        target = _create(sales_user)
        invoice = _record_today()

        assert tasks.record_invoice_progress_task.delay(str(invoice.pk)).get() == str(target.pk)

    def test_recalculate_active_targets_fans_out(self, sales_user):
        target = _create(sales_user)
        _create(sales_user, customer_code="C002", is_recurring=False, target_amount=Decimal("10"))
        CustomerTarget.objects.filter(customer_code="C002").update(status=CustomerTarget.Status.COMPLETED)
        _record_today()

        queued = tasks.recalculate_active_targets()

        assert queued == 1
        target.refresh_from_db()
        assert target.achieved_amount == Decimal("100.00")
        assert target.last_recalculated_at is not None

    def test_rollover_task_honours_cancellation(self, sales_user):
        _create(sales_user, today=date(2020, 1, 10))
        tasks.request_sweep_cancellation()
        assert tasks.sweep_cancelled() is True

        result = tasks.rollover_recurring_targets()

        assert result == {"processed": 0, "failed": 0, "cancelled": True}
        assert tasks.sweep_cancelled() is False

    def test_rollover_task(self, sales_user):
        _create(sales_user, today=date(2020, 1, 10))

        result = tasks.rollover_recurring_targets()

        assert result["processed"] == 1
        assert TargetPeriodHistory.objects.get().period_label == "2020-01"

    def test_expire_task(self, sales_user):
        target = _create(sales_user, is_recurring=False, today=date(2020, 1, 10))

        result = tasks.expire_lapsed_targets_task()

        assert result["processed"] == 1
        target.refresh_from_db()
        assert target.status == CustomerTarget.Status.EXPIRED


@pytest.mark.django_db
class TestRunTargetSweepsCommand:
    def test_runs_both_sweeps_for_given_day(self, sales_user):
        _create(sales_user, today=date(2024, 1, 15))
        _create(sales_user, customer_code="C002", is_recurring=False, today=date(2024, 1, 15))
        out = StringIO()

        call_command("run_target_sweeps", "--date", "2024-02-02", stdout=out)

        output = out.getvalue()
        assert "Rollover: 1 processed, 0 failed" in output
        assert "Expiry: 1 processed, 0 failed" in output
        assert CustomerTarget.objects.get(customer_code="C002").status == CustomerTarget.Status.EXPIRED

    def test_skip_expire(self, sales_user):
        _create(sales_user, customer_code="C002", is_recurring=False, today=date(2024, 1, 15))
        out = StringIO()

        call_command("run_target_sweeps", "--date", "2024-02-02", "--skip-expire", stdout=out)

        assert "Expiry" not in out.getvalue()
        assert CustomerTarget.objects.get().status == CustomerTarget.Status.ACTIVE

    def test_rejects_bad_date(self, db):
        from django.core.management.base import CommandError

        with pytest.raises(CommandError):
            call_command("run_target_sweeps", "--date", "02/02/2024")


class _AdvisoryCursor:
    def __init__(self, acquired):
        self.acquired = acquired
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, sql, params):
        self.executed.append((sql, params))

    def fetchone(self):
        return (self.acquired,)


def _postgres_with_lock(acquired):
    cursor = _AdvisoryCursor(acquired)
    return SimpleNamespace(vendor="postgresql", cursor=lambda: cursor), cursor


class TestCustomerLock:
    def test_busy_lock_raises(self, monkeypatch):
        fake_connection, cursor = _postgres_with_lock(False)
        monkeypatch.setattr(services, "connection", fake_connection)

        with pytest.raises(TargetLockBusy):
            services._acquire_customer_lock("C001")

        sql, params = cursor.executed[0]
        assert "pg_try_advisory_xact_lock" in sql
        assert params == [services._make_lock_key("C001")]

    def test_free_lock_passes(self, monkeypatch):
        fake_connection, cursor = _postgres_with_lock(True)
        monkeypatch.setattr(services, "connection", fake_connection)

        services._acquire_customer_lock("C001")

        assert len(cursor.executed) == 1

    def test_lock_key_is_stable_per_customer(self):
        assert services._make_lock_key("C001") == services._make_lock_key("C001")
        assert services._make_lock_key("C001") != services._make_lock_key("C002")
        assert 0 <= services._make_lock_key("C001") < 2**31


@pytest.mark.django_db
class TestBusyCustomerLock:
    def test_progress_task_retries(self, customer, sales_user, monkeypatch):
        _create(sales_user)
        invoice = _record_today()
        fake_connection, _ = _postgres_with_lock(False)
        monkeypatch.setattr(services, "connection", fake_connection)
        retries = []

        def fake_retry(*, exc, countdown):
            retries.append((exc, countdown))
            return Retry(exc=exc, when=countdown)

        monkeypatch.setattr(tasks.record_invoice_progress_task, "retry", fake_retry)

        with pytest.raises(Retry):
            tasks.record_invoice_progress_task.run(str(invoice.pk))

        assert len(retries) == 1
        exc, countdown = retries[0]
        assert isinstance(exc, TargetLockBusy)
        assert countdown == 5

    def test_best_effort_wrapper_swallows_busy_lock(self, customer, sales_user, monkeypatch, caplog):
        target = _create(sales_user)
        invoice = _record_today()
        fake_connection, _ = _postgres_with_lock(False)
        monkeypatch.setattr(services, "connection", fake_connection)

        assert services.record_invoice_progress(invoice) is None

        target.refresh_from_db()
        assert target.achieved_amount == Decimal("0")
        assert "Error updating customer target progress" in caplog.text
