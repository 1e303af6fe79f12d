"""Read-only aggregation of customer targets for agent, team and customer views."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from accounts.services import team_agents
from targets import periods
from targets.engine import AchievementCalculator
from targets.models import CustomerTarget
from targets.normalizer import ZERO, round_money

logger = logging.getLogger(__name__)

TEAM_TARGETS_SIZE = 20
RECENT_ACTIVITY_SIZE = 10


class TargetDashboard:
    """Compose targets and their achievement into dashboard views.

    With ``live=True`` every target goes through the achievement engine, which
    is what detail and summary screens show. ``live=False`` surfaces the
    persisted cache and is meant for high-volume listings.

    Rankings sort on ``achievement_rate`` only. Python's sort is stable, so
    ties keep the queryset order (soonest window end first, then newest);
    callers must not depend on that order.
    """

    def __init__(self, calculator: AchievementCalculator | None = None, today: date | None = None) -> None:
        self.calculator = calculator or AchievementCalculator()
        self.today = today or timezone.localdate()
        self.near_deadline_days = getattr(settings, "TARGET_NEAR_DEADLINE_DAYS", 7)
        self.ranking_size = getattr(settings, "TARGET_RANKING_SIZE", 5)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def agent_summary(self, agent_id, *, live: bool = True) -> dict:
        targets = CustomerTarget.objects.filter(sales_agent_id=agent_id).select_related("sales_agent")
        return self._build_view(self._rows(targets, live))

    def team_summary(self, manager_id, *, live: bool = True) -> dict:
        """Aggregate over every active agent reporting to ``manager_id``."""
        agents = list(team_agents(manager_id))
        targets = CustomerTarget.objects.filter(sales_agent__in=agents).select_related("sales_agent")
        rows = self._rows(targets, live)
        view = self._build_view(rows)

        view["agent_performance"] = self._agent_performance(agents, rows)
        active = [row for row in rows if row["status"] == periods.ACTIVE]
        view["team_targets"] = sorted(active, key=lambda row: row["window_end"])[:TEAM_TARGETS_SIZE]
        view["recent_activity"] = sorted(rows, key=lambda row: row["updated_at"], reverse=True)[
            :RECENT_ACTIVITY_SIZE
        ]
        logger.debug("Team summary for manager %s: %d agents, %d targets", manager_id, len(agents), len(rows))
        return view

    def customer_summary(self, customer_code: str, *, agent_ids=None, live: bool = True) -> dict:
        """Targets of one customer, optionally restricted to some agents."""
        targets = CustomerTarget.objects.filter(customer_code=customer_code).select_related("sales_agent")
        if agent_ids is not None:
            targets = targets.filter(sales_agent_id__in=list(agent_ids))
        return self._build_view(self._rows(targets, live))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _rows(self, targets, live: bool) -> list[dict]:
        return [self._row(target, live) for target in targets]

    def _row(self, target: CustomerTarget, live: bool) -> dict:
        if live:
            result = self.calculator.compute(target, today=self.today)
            achieved, rate, stale = result.achieved_amount, result.achievement_rate, result.stale
            window_start, window_end = result.window_start, result.window_end
            record_count = result.record_count
        else:
            achieved, rate, stale = target.achieved_amount, target.achievement_rate, target.achievement_stale
            window_start, window_end = periods.resolve_window(target, self.today)
            record_count = None

        # Display status only; nothing is written back from here.
        status = periods.evaluate_status(
            target.status,
            is_recurring=target.is_recurring,
            achieved=achieved,
            target_amount=target.target_amount,
            window_end=window_end,
            today=self.today,
        )
        agent = target.sales_agent
        return {
            "id": target.pk,
            "customer_code": target.customer_code,
            "customer_name": target.customer_name,
            "sales_agent_id": target.sales_agent_id,
            "sales_agent_name": agent.get_full_name() or agent.email,
            "target_amount": target.target_amount,
            "achieved_amount": achieved,
            "achievement_rate": rate,
            "record_count": record_count,
            "period_kind": target.period_kind,
            "is_recurring": target.is_recurring,
            "window_start": window_start,
            "window_end": window_end,
            "days_remaining": (window_end - self.today).days,
            "status": status,
            "stale": stale,
            "updated_at": target.updated_at,
        }

    def _build_view(self, rows: list[dict]) -> dict:
        near_deadline = [
            row for row in rows
            if row["status"] == periods.ACTIVE
            and periods.is_near_deadline(row["window_end"], self.today, self.near_deadline_days)
        ]
        return {
            "summary": self._summarize(rows),
            "near_deadline": sorted(near_deadline, key=lambda row: row["window_end"]),
            "highest_achieving": sorted(rows, key=lambda row: row["achievement_rate"], reverse=True)[
                : self.ranking_size
            ],
            "lowest_achieving": sorted(rows, key=lambda row: row["achievement_rate"])[: self.ranking_size],
            "targets": rows,
        }

    @staticmethod
    def _summarize(rows: list[dict]) -> dict:
        total_target = sum((Decimal(row["target_amount"]) for row in rows), ZERO)
        total_achieved = sum((Decimal(row["achieved_amount"]) for row in rows), ZERO)
        return {
            "total_targets": len(rows),
            "active_targets": sum(1 for row in rows if row["status"] == periods.ACTIVE),
            "completed_targets": sum(1 for row in rows if row["status"] == periods.COMPLETED),
            "expired_targets": sum(1 for row in rows if row["status"] == periods.EXPIRED),
            "total_target_amount": round_money(total_target),
            "total_achieved_amount": round_money(total_achieved),
            "overall_achievement_rate": round_money(periods.compute_rate(total_achieved, total_target)),
            "stale_targets": sum(1 for row in rows if row["stale"]),
        }

    def _agent_performance(self, agents, rows: list[dict]) -> list[dict]:
        by_agent: dict = {agent.pk: [] for agent in agents}
        for row in rows:
            by_agent.setdefault(row["sales_agent_id"], []).append(row)

        performance = []
        for agent in agents:
            summary = self._summarize(by_agent[agent.pk])
            performance.append(
                {
                    "agent_id": agent.pk,
                    "agent_name": agent.get_full_name() or agent.email,
                    **summary,
                }
            )
        performance.sort(key=lambda entry: entry["overall_achievement_rate"], reverse=True)
        return performance
