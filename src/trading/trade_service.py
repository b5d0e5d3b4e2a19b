# === MODULE PURPOSE ===
# Trade command workflows: buy, sell, list, delete, daily summary data.
# Composes the trade store, the position ledger and the performance
# aggregator; posts rendered alerts through the chat notifier.

# === KEY CONCEPTS ===
# - Read-modify-write: fetch -> ledger -> save with the revision that was read
# - Conflict (stale revision) is surfaced to the caller unchanged, no silent
#   overwrite and no automatic retry
# - LLM commentary is optional enrichment: any failure becomes a placeholder
#   and never blocks recording the sell
# - Trade alerts use the notifier's short alert budget so a down chat relay
#   never stalls a command; failures are logged by the notifier, never raised

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.common.llm_service import ANALYSIS_UNAVAILABLE, build_trade_prompt
from src.trading.errors import Conflict, NotFound, TradingError
from src.trading.formatter import format_buy_alert, format_sell_alert
from src.trading.input_parser import BuyRequest, SellRequest
from src.trading.models import DEFAULT_TIMEZONE, TradeRecord
from src.trading.performance import DailyStats, PeriodSummary, daily_stats, period_summary
from src.trading.position_ledger import (
    apply_sell,
    create_position,
    find_merge_candidate,
    merge_buy,
    pnl_percent,
    realized_pnl,
)

if TYPE_CHECKING:
    from src.common.feishu_bot import FeishuBot
    from src.common.llm_service import LLMService
    from src.trading.repository import TradeStore

logger = logging.getLogger(__name__)


@dataclass
class BuyResult:
    """Outcome of a recorded buy."""

    record: TradeRecord
    previous: TradeRecord | None
    stats: DailyStats
    message: str

    @property
    def merged(self) -> bool:
        """True if the buy was averaged into an existing open position."""
        return self.previous is not None


@dataclass
class SellResult:
    """Outcome of a recorded sell."""

    record: TradeRecord
    previous: TradeRecord
    realized_pl: float
    pl_percent: float
    analysis: str
    message: str

    @property
    def closed(self) -> bool:
        return not self.record.is_open


@dataclass
class DeleteSummary:
    """Outcome of a bulk delete."""

    deleted: int = 0
    failed: int = 0


class TradeService:
    """
    Entry point for trade commands.

    The store handle is passed in explicitly; its lifecycle belongs to the
    process bootstrap.

    Usage:
        service = TradeService(repository, analyst=llm, notifier=bot)

        result = await service.record_buy(parse_buy_request(...))
        result = await service.record_sell(parse_sell_request(...))
        summary = await service.build_daily_summary(["user-1"])
    """

    def __init__(
        self,
        repository: TradeStore,
        analyst: LLMService | None = None,
        notifier: FeishuBot | None = None,
        tz: ZoneInfo | None = None,
    ):
        self._repository = repository
        self._analyst = analyst
        self._notifier = notifier
        self._tz = tz or DEFAULT_TIMEZONE

    @property
    def repository(self) -> TradeStore:
        return self._repository

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """[start, end) of a trading day in the journal timezone."""
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        return start, start + timedelta(days=1)

    # ==================== Buy / Sell ====================

    async def record_buy(self, request: BuyRequest, now: datetime | None = None) -> BuyResult:
        """
        Record a buy: average into the matching open position or open a new one.

        Raises:
            Conflict: The matching position changed since it was read.
        """
        timestamp = now or self._now()

        open_trades = await self._repository.get_open_trades(request.user_id)
        existing = find_merge_candidate(
            open_trades,
            request.user_id,
            request.stock,
            request.contract,
            request.expiration,
        )

        if existing is not None:
            record = merge_buy(
                existing, request.price, request.quantity, request.notes, now=timestamp
            )
            logger.info(
                f"Averaging {request.quantity} into {existing.trade_id} "
                f"({existing.stock} {existing.contract}): "
                f"{existing.buy_price:.2f} -> {record.buy_price:.2f}"
            )
        else:
            record = create_position(
                request.user_id,
                request.stock,
                request.contract,
                request.expiration,
                request.price,
                request.quantity,
                request.notes,
                now=timestamp,
            )

        stored = await self._repository.save_trade(record)

        stats = await self.get_daily_stats(request.user_id, timestamp.astimezone(self._tz).date())
        message = format_buy_alert(
            stored, request.price, request.quantity, existing, stats, request.notes
        )
        await self._notify(message)

        return BuyResult(record=stored, previous=existing, stats=stats, message=message)

    async def record_sell(self, request: SellRequest, now: datetime | None = None) -> SellResult:
        """
        Record a sell against one of the user's positions.

        Raises:
            NotFound: Unknown trade id, or the trade belongs to another user.
            OverSell: Quantity exceeds the remaining open quantity.
            Conflict: The position changed since it was read.
        """
        trade = await self.get_user_trade(request.user_id, request.trade_id)

        updated = apply_sell(trade, request.price, request.quantity, now=now or self._now())
        if request.notes:
            updated = replace(updated, notes=request.notes)

        pl = realized_pnl(trade.buy_price, request.price, request.quantity)
        percent = pnl_percent(trade.buy_price, request.price)
        analysis = await self._analyze(trade, request.price, request.quantity, pl, percent)

        stored = await self._repository.save_trade(updated)
        logger.info(
            f"Sold {request.quantity} of {trade.trade_id} ({trade.stock} {trade.contract}) "
            f"@ {request.price:.2f}, P/L {pl:.2f}, open={stored.is_open}"
        )

        message = format_sell_alert(
            trade, stored, request.price, request.quantity, analysis, request.notes
        )
        await self._notify(message)

        return SellResult(
            record=stored,
            previous=trade,
            realized_pl=pl,
            pl_percent=percent,
            analysis=analysis,
            message=message,
        )

    # ==================== Queries ====================

    async def get_user_trade(self, user_id: str, trade_id: str) -> TradeRecord:
        """
        Fetch a trade owned by the user.

        Raises:
            NotFound: Unknown id or owned by someone else.
        """
        trade = await self._repository.get_trade(trade_id)
        if trade is None or trade.user_id != user_id:
            raise NotFound(trade_id)
        return trade

    async def list_open_positions(self, user_id: str) -> list[TradeRecord]:
        return await self._repository.get_open_trades(user_id)

    async def list_trades(self, user_id: str) -> list[TradeRecord]:
        return await self._repository.get_trades_by_user(user_id)

    async def get_daily_stats(self, user_id: str, reference_day: date | None = None) -> DailyStats:
        """Quick stats of one user for a trading day (default today)."""
        day = reference_day or self._now().date()
        start, end = self.day_bounds(day)
        trades = await self._repository.get_trades_in_range(user_id, start, end)
        return daily_stats(trades, day, self._tz)

    async def build_daily_summary(
        self,
        user_ids: Iterable[str],
        reference_day: date | None = None,
        today: date | None = None,
    ) -> PeriodSummary:
        """Period summary over every record of the given users."""
        day = reference_day or self._now().date()

        trades: list[TradeRecord] = []
        for user_id in user_ids:
            trades.extend(await self._repository.get_trades_by_user(user_id))

        return period_summary(trades, day, today=today, tz=self._tz)

    # ==================== Deletes ====================

    async def delete_trade(self, user_id: str, trade_id: str) -> TradeRecord:
        """
        Delete one of the user's trades at the revision just read.

        Raises:
            NotFound: Unknown id or owned by someone else.
            Conflict: The trade changed between read and delete, or carries
                no revision to check against.
        """
        trade = await self.get_user_trade(user_id, trade_id)
        if trade.revision is None:
            raise Conflict(trade_id, None)
        await self._repository.delete_trade(trade_id, trade.revision)
        logger.info(f"Deleted trade {trade_id} ({trade.stock} {trade.contract}) for {user_id}")
        return trade

    async def delete_all_trades(self, user_id: str) -> DeleteSummary:
        """Delete every trade of the user; failures are counted, not raised."""
        summary = DeleteSummary()
        trades = await self._repository.get_trades_by_user(user_id)
        logger.info(f"Found {len(trades)} trades to delete for user {user_id}")

        for trade in trades:
            if trade.trade_id is None or trade.revision is None:
                summary.failed += 1
                logger.error(f"Trade missing id or revision: {trade.to_dict()}")
                continue
            try:
                await self._repository.delete_trade(trade.trade_id, trade.revision)
                summary.deleted += 1
            except TradingError as e:
                summary.failed += 1
                logger.error(f"Failed to delete trade {trade.trade_id}: {e}")

        return summary

    # ==================== Collaborators ====================

    async def _analyze(
        self,
        trade: TradeRecord,
        sell_price: float,
        sell_quantity: int,
        pl: float,
        percent: float,
    ) -> str:
        """LLM commentary for a sell; placeholder text on any failure."""
        if self._analyst is None:
            return ""

        prompt = build_trade_prompt(
            trade.stock,
            trade.contract,
            trade.buy_price,
            sell_price,
            sell_quantity,
            pl,
            percent,
        )
        try:
            result = await self._analyst.analyze_trade(prompt)
        except Exception as e:
            logger.error(f"Failed to get AI analysis: {e}")
            return ANALYSIS_UNAVAILABLE

        if not result.success:
            logger.warning(f"AI analysis failed: {result.error}")
        return result.display_text()

    async def _notify(self, message: str) -> None:
        if self._notifier is None:
            return
        await self._notifier.send_trade_alert(message)
