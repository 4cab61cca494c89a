"""
Profit Actions.
Revenue and profit over a recent window of orders.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from kuber.config import get_settings
from kuber.core.intent import Intent
from kuber.core.text import format_inr
from kuber.db.store import RecordStore
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class DailyProfit:
    date: str
    revenue: float = 0.0
    profit: float = 0.0


@dataclass
class ProfitReport:
    days: int
    daily: List[DailyProfit] = field(default_factory=list)
    total_revenue: float = 0.0
    total_profit: float = 0.0
    average_margin: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": self.days,
            "daily": [{"date": d.date, "revenue": d.revenue, "profit": d.profit} for d in self.daily],
            "totalRevenue": self.total_revenue,
            "totalProfit": self.total_profit,
            "averageMargin": self.average_margin,
        }


class ProfitAnalyzer:
    def __init__(self, store: RecordStore):
        self.store = store

    async def analyze(self, days: Optional[int] = None, now: Optional[datetime] = None) -> ProfitReport:
        """
        Per-day revenue and profit for orders in the last `days` days.

        Days are calendar dates of created_at, in ascending order. The
        margin is profit over revenue in percent, 0 without revenue.
        """
        days = days or settings.PROFIT_WINDOW_DAYS
        cutoff = (now or datetime.now()) - timedelta(days=days)

        by_date: Dict[str, DailyProfit] = {}
        for order in await self.store.get_all("orders"):
            if order.created_at is None or order.created_at <= cutoff:
                continue
            key = order.created_at.date().isoformat()
            day = by_date.setdefault(key, DailyProfit(date=key))
            day.revenue += order.total or 0
            day.profit += order.profit or 0

        daily = [by_date[key] for key in sorted(by_date)]
        total_revenue = sum(d.revenue for d in daily)
        total_profit = sum(d.profit for d in daily)
        margin = (total_profit / total_revenue) * 100 if total_revenue > 0 else 0.0

        return ProfitReport(
            days=days,
            daily=daily,
            total_revenue=total_revenue,
            total_profit=total_profit,
            average_margin=margin,
        )


async def profit_handler(ctx: ActionContext) -> ActionReply:
    report = await ProfitAnalyzer(ctx.store).analyze()
    period = "Is hafte" if report.days == 7 else f"Pichle {report.days} din mein"
    return ActionReply(
        f"{period} {format_inr(report.total_profit)} kamai hui hai. "
        f"Revenue: {format_inr(report.total_revenue)}. "
        f"Average margin: {report.average_margin:.1f}%."
    )


async def register_profit_actions(router: ActionRouter):
    """Register profit actions with the router."""

    router.register(Action(
        intent=Intent.PROFIT_ANALYSIS,
        name="profit_analysis",
        description="Revenue, profit and margin for the recent window.",
        handler=profit_handler
    ))

    logger.info("Profit actions registered")
