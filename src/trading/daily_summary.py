# === MODULE PURPOSE ===
# End-of-day summary job: resolves which users to report on, builds the
# period summary, renders it and posts it to the trade channel.

# === DEPENDENCIES ===
# - trade_service: Gathers trades and builds the PeriodSummary
# - formatter: Renders the summary text
# - feishu_bot: Delivery (optional, message is still returned without it)

# === KEY CONCEPTS ===
# - User resolution: configured admin ids by default; with all_users the
#   trade store is enumerated and the admin ids are kept as well
# - Registered on DailyScheduler; exceptions propagate to the scheduler,
#   which logs them and keeps the schedule

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from src.trading.formatter import format_daily_summary

if TYPE_CHECKING:
    from src.common.feishu_bot import FeishuBot
    from src.trading.performance import PeriodSummary
    from src.trading.trade_service import TradeService

logger = logging.getLogger(__name__)


class DailySummaryJob:
    """
    Daily summary for one or more users.

    Usage:
        job = DailySummaryJob(service, bot, admin_user_ids=["123"])
        scheduler.schedule_daily("daily_summary", 16, 0, job.run)
    """

    def __init__(
        self,
        service: TradeService,
        notifier: FeishuBot | None = None,
        admin_user_ids: list[str] | None = None,
        all_users: bool = False,
    ):
        self._service = service
        self._notifier = notifier
        self._admin_user_ids = list(admin_user_ids or [])
        self._all_users = all_users

    async def resolve_user_ids(self) -> list[str]:
        """Users included in the summary, in stable order without duplicates."""
        user_ids = list(self._admin_user_ids)
        if self._all_users:
            for user_id in await self._service.repository.get_user_ids():
                if user_id not in user_ids:
                    user_ids.append(user_id)
        return user_ids

    async def build(self, reference_day: date | None = None) -> PeriodSummary | None:
        """Summary for the resolved users; None if there is nobody to report on."""
        user_ids = await self.resolve_user_ids()
        if not user_ids:
            logger.warning("No users configured for daily summary")
            return None
        return await self._service.build_daily_summary(user_ids, reference_day)

    async def run(self, reference_day: date | None = None) -> str | None:
        """
        Build, render and post the summary.

        Returns:
            The rendered message, or None if there were no users.
        """
        summary = await self.build(reference_day)
        if summary is None:
            return None

        message = format_daily_summary(summary)
        logger.info(
            f"Daily summary for {summary.reference_day}: "
            f"{summary.profit_loss.total_trades} trades, "
            f"P/L {summary.profit_loss.total_pl:.2f}, "
            f"{sum(len(v) for v in summary.open_positions.values())} open positions"
        )

        if self._notifier is not None:
            sent = await self._notifier.send_message(message)
            if not sent:
                logger.error("Failed to deliver daily summary")

        return message
