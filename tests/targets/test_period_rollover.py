from datetime import date
from decimal import Decimal

import pytest

from targets import services
from targets.engine import AchievementCalculator
from targets.exceptions import NotRecurring, TargetNotFound
from targets.models import CustomerTarget, TargetPeriodHistory

JANUARY = date(2024, 1, 15)
EARLY_FEBRUARY = date(2024, 2, 3)


def _create(agent, **overrides):
    params = {
        "customer_code": "C001",
        "customer_name": "Acme SARL",
        "sales_agent": agent,
        "target_amount": Decimal("400"),
        "today": JANUARY,
    }
    params.update(overrides)
    return services.create_target(**params)


class _FailingFor(AchievementCalculator):
    def __init__(self, customer_code):
        super().__init__()
        self.customer_code = customer_code

    def compute(self, target, today=None):
        if target.customer_code == self.customer_code:
            raise RuntimeError("unexpected engine failure")
        return super().compute(target, today=today)


@pytest.mark.django_db
class TestStartNewPeriod:
    def test_archives_ended_window_and_resets_progress(self, sales_user, make_invoice):
        target = _create(sales_user)
        make_invoice(doc_date=date(2024, 1, 20), gross_total=Decimal("120"), vat_amount=Decimal("20"))
        services.recalculate_target(target, today=JANUARY)

        rolled = services.start_new_period(target, today=EARLY_FEBRUARY)

        assert (rolled.current_period_start, rolled.current_period_end) == (date(2024, 2, 1), date(2024, 2, 29))
        assert rolled.legacy_deadline == date(2024, 2, 29)
        assert rolled.achieved_amount == Decimal("0")
        assert rolled.achievement_rate == Decimal("0")
        assert rolled.status == CustomerTarget.Status.ACTIVE
        assert rolled.contributions.count() == 0

        history = TargetPeriodHistory.objects.get(target=target)
        assert history.period_label == "2024-01"
        assert (history.period_start, history.period_end) == (date(2024, 1, 1), date(2024, 1, 31))
        assert history.achieved_amount == Decimal("100.00")
        assert history.achievement_rate == Decimal("25.00")
        assert history.record_count == 1
        assert history.target_amount == Decimal("400.00")

    def test_archive_uses_fresh_invoices(self, sales_user, make_invoice):
        target = _create(sales_user)
        # Cache never refreshed; the archived figures still come from invoices.
        make_invoice(doc_date=date(2024, 1, 31), gross_total=Decimal("240"), vat_percent=Decimal("20"))

        services.start_new_period(target, today=EARLY_FEBRUARY)

        assert TargetPeriodHistory.objects.get(target=target).achieved_amount == Decimal("200.00")

    def test_twice_in_same_period_is_idempotent(self, sales_user):
        target = _create(sales_user)

        services.start_new_period(target, today=EARLY_FEBRUARY)
        target.refresh_from_db()
        CustomerTarget.objects.filter(pk=target.pk).update(achieved_amount=Decimal("80"))
        services.start_new_period(target, today=date(2024, 2, 20))

        target.refresh_from_db()
        assert TargetPeriodHistory.objects.filter(target=target).count() == 1
        assert target.current_period_start == date(2024, 2, 1)
        assert target.achieved_amount == Decimal("80.00")

    def test_quarterly_label(self, sales_user):
        target = _create(sales_user, period_kind="quarterly")

        services.start_new_period(target, today=date(2024, 4, 2))

        history = TargetPeriodHistory.objects.get(target=target)
        assert history.period_label == "2024-Q1"
        target.refresh_from_db()
        assert (target.current_period_start, target.current_period_end) == (date(2024, 4, 1), date(2024, 6, 30))

    def test_store_failure_archives_cached_values(self, sales_user):
        target = _create(sales_user)
        CustomerTarget.objects.filter(pk=target.pk).update(
            achieved_amount=Decimal("120"), achievement_rate=Decimal("30"),
        )
        target.refresh_from_db()

        def broken_fetch(customer_code, start, end):
            raise TimeoutError("slow")

        services.start_new_period(
            target, today=EARLY_FEBRUARY, calculator=AchievementCalculator(fetch_records=broken_fetch),
        )

        history = TargetPeriodHistory.objects.get(target=target)
        assert history.achieved_amount == Decimal("120.00")
        assert history.achievement_rate == Decimal("30.00")

    def test_rejects_non_recurring(self, sales_user):
        target = _create(sales_user, is_recurring=False)
        with pytest.raises(NotRecurring):
            services.start_new_period(target, today=EARLY_FEBRUARY)

    def test_rollover_target_by_id(self, sales_user):
        target = _create(sales_user)

        rolled = services.rollover_target(target.pk, today=EARLY_FEBRUARY)

        assert rolled.current_period_start == date(2024, 2, 1)
        with pytest.raises(TargetNotFound):
            services.rollover_target("00000000-0000-0000-0000-000000000000", today=EARLY_FEBRUARY)


@pytest.mark.django_db
class TestRolloverSweep:
    def test_rolls_only_lapsed_recurring_targets(self, sales_user):
        lapsed = [_create(sales_user), _create(sales_user, customer_code="C002")]
        non_recurring = _create(sales_user, customer_code="C003", is_recurring=False)
        current = _create(sales_user, customer_code="C004", today=EARLY_FEBRUARY)

        result = services.rollover_sweep(EARLY_FEBRUARY)

        assert (result.processed, result.failed, result.cancelled) == (2, 0, False)
        for target in lapsed:
            target.refresh_from_db()
            assert target.current_period_start == date(2024, 2, 1)
        non_recurring.refresh_from_db()
        current.refresh_from_db()
        assert non_recurring.current_period_start == date(2024, 1, 1)
        assert current.history.count() == 0

    def test_running_twice_is_a_no_op(self, sales_user):
        _create(sales_user)
        _create(sales_user, customer_code="C002")

        first = services.rollover_sweep(EARLY_FEBRUARY)
        second = services.rollover_sweep(EARLY_FEBRUARY)

        assert first.processed == 2
        assert second.processed == 0
        assert TargetPeriodHistory.objects.count() == 2

    def test_legacy_deadline_targets_are_rolled(self, sales_user):
        legacy = CustomerTarget.objects.create(
            customer_code="C001",
            customer_name="Acme SARL",
            sales_agent=sales_user,
            target_amount=Decimal("100"),
            legacy_deadline=date(2024, 1, 31),
        )

        result = services.rollover_sweep(EARLY_FEBRUARY)

        assert result.processed == 1
        legacy.refresh_from_db()
        assert (legacy.current_period_start, legacy.current_period_end) == (date(2024, 2, 1), date(2024, 2, 29))
        assert legacy.history.get().period_label == "2024-01"

    def test_one_failure_does_not_abort(self, sales_user, caplog):
        _create(sales_user, customer_code="BAD")
        good = _create(sales_user)

        result = services.rollover_sweep(EARLY_FEBRUARY, calculator=_FailingFor("BAD"))

        assert (result.processed, result.failed) == (1, 1)
        good.refresh_from_db()
        assert good.current_period_start == date(2024, 2, 1)
        bad = CustomerTarget.objects.get(customer_code="BAD")
        assert bad.current_period_start == date(2024, 1, 1)
        assert bad.history.count() == 0
        assert "Rollover failed" in caplog.text

    def test_cooperative_cancellation(self, sales_user):
        _create(sales_user)
        _create(sales_user, customer_code="C002")
        calls = []

        def stop_after_first():
            calls.append(1)
            return len(calls) > 1

        result = services.rollover_sweep(EARLY_FEBRUARY, should_stop=stop_after_first)

        assert result.cancelled is True
        assert result.processed == 1
        assert TargetPeriodHistory.objects.count() == 1


@pytest.mark.django_db
class TestExpireLapsedTargets:
    def test_settles_non_recurring_targets(self, sales_user, make_invoice):
        missed = _create(sales_user, is_recurring=False)
        reached = _create(sales_user, customer_code="C002", is_recurring=False, target_amount=Decimal("100"))
        recurring = _create(sales_user, customer_code="C003")
        make_invoice(customer_code="C002", doc_date=date(2024, 1, 25))

        result = services.expire_lapsed_targets(EARLY_FEBRUARY)

        assert result.processed == 2
        missed.refresh_from_db()
        reached.refresh_from_db()
        recurring.refresh_from_db()
        assert missed.status == CustomerTarget.Status.EXPIRED
        assert reached.status == CustomerTarget.Status.COMPLETED
        assert recurring.status == CustomerTarget.Status.ACTIVE

    def test_open_windows_are_untouched(self, sales_user):
        target = _create(sales_user, is_recurring=False)

        result = services.expire_lapsed_targets(date(2024, 1, 31))

        assert result.processed == 0
        target.refresh_from_db()
        assert target.status == CustomerTarget.Status.ACTIVE

    def test_unreadable_store_leaves_status(self, sales_user):
        target = _create(sales_user, is_recurring=False)

        def broken_fetch(customer_code, start, end):
            raise TimeoutError("slow")

        result = services.expire_lapsed_targets(
            EARLY_FEBRUARY, calculator=AchievementCalculator(fetch_records=broken_fetch),
        )

        assert (result.processed, result.failed) == (0, 1)
        target.refresh_from_db()
        assert target.status == CustomerTarget.Status.ACTIVE
        assert target.achievement_stale is True
