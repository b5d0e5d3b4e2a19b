# === MODULE PURPOSE ===
# Performance aggregation over trade records.
# Derives daily statistics and the end-of-day summary report.

# === KEY CONCEPTS ===
# - Trading action counting: a record counts once for a buy created on the
#   reference day and once more if it has sells on that day. A same-day
#   round trip therefore counts as two trades (kept for compatibility with
#   historical summaries).
# - Win/loss is decided per record from the sum of its sells on the day,
#   zero P/L counts as a win.
# - All functions are pure; records are read, never modified.

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from zoneinfo import ZoneInfo

from src.trading.models import SellEvent, TradeRecord, trading_day
from src.trading.position_ledger import pnl_percent, sell_event_pnl

logger = logging.getLogger(__name__)


@dataclass
class DailyStats:
    """Quick statistics for one trading day."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: int = 0
    total_pl: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "win_rate": self.win_rate,
            "total_pl": self.total_pl,
        }


@dataclass
class TradeDetail:
    """Realized P/L of one record on the reference day."""

    stock: str
    contract: str
    pl: float
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"stock": self.stock, "contract": self.contract, "pl": self.pl, "notes": self.notes}


@dataclass
class DailyProfitLoss:
    """Realized P/L for the reference day with per-record detail."""

    total_pl: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0
    total_trades: int = 0
    trade_details: list[TradeDetail] = field(default_factory=list)

    @property
    def win_rate(self) -> int:
        return calculate_win_rate(self.winning_trades, self.losing_trades)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pl": self.total_pl,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_trades": self.total_trades,
            "win_rate": self.win_rate,
            "trade_details": [d.to_dict() for d in self.trade_details],
        }


@dataclass
class ActivityEntry:
    """
    One record's action on the reference day.

    action is "SELL" (latest sell of the day) or "BUY" when nothing was sold
    that day. pl and pl_percent are only set for sells.
    """

    trade_id: str | None
    stock: str
    contract: str
    expiration: date
    action: str
    price: float
    quantity: int
    pl: float | None = None
    pl_percent: float | None = None
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "stock": self.stock,
            "contract": self.contract,
            "expiration": self.expiration.isoformat(),
            "action": self.action,
            "price": self.price,
            "quantity": self.quantity,
            "pl": self.pl,
            "pl_percent": self.pl_percent,
            "notes": self.notes,
        }


@dataclass
class OpenPositionEntry:
    """An open position with expiration urgency."""

    trade_id: str | None
    stock: str
    contract: str
    expiration: date
    remaining_quantity: int
    buy_quantity: int
    buy_price: float
    days_to_expiration: int
    expiration_label: str
    notes: str = ""

    @property
    def is_urgent(self) -> bool:
        """Expires within three days (or already expired)."""
        return self.days_to_expiration <= 3

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "stock": self.stock,
            "contract": self.contract,
            "expiration": self.expiration.isoformat(),
            "remaining_quantity": self.remaining_quantity,
            "buy_quantity": self.buy_quantity,
            "buy_price": self.buy_price,
            "days_to_expiration": self.days_to_expiration,
            "expiration_label": self.expiration_label,
            "is_urgent": self.is_urgent,
            "notes": self.notes,
        }


@dataclass
class PeriodSummary:
    """End-of-day report: realized P/L, the day's activity and open positions."""

    reference_day: date
    profit_loss: DailyProfitLoss
    activity: dict[str, list[ActivityEntry]]
    open_positions: dict[str, list[OpenPositionEntry]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference_day": self.reference_day.isoformat(),
            "profit_loss": self.profit_loss.to_dict(),
            "activity": {s: [e.to_dict() for e in es] for s, es in self.activity.items()},
            "open_positions": {
                s: [e.to_dict() for e in es] for s, es in self.open_positions.items()
            },
        }


# ==================== Helpers ====================


def calculate_win_rate(winning: int, losing: int) -> int:
    """Percentage of winning records, rounded half-up; 0 when nothing was sold."""
    decided = winning + losing
    if decided == 0:
        return 0
    return math.floor(winning / decided * 100 + 0.5)


def sells_on_day(
    record: TradeRecord,
    reference_day: date,
    tz: ZoneInfo | None = None,
) -> list[SellEvent]:
    """Sell events of a record that happened on the reference day."""
    return [e for e in record.sell_events if trading_day(e.timestamp, tz) == reference_day]


def created_on_day(record: TradeRecord, reference_day: date, tz: ZoneInfo | None = None) -> bool:
    return trading_day(record.created_at, tz) == reference_day


def days_to_expiration(expiration: date, today: date) -> int:
    """Whole days from today until expiration (negative once expired)."""
    return (expiration - today).days


def expiration_label(days: int) -> str:
    """Urgency label for a days-to-expiration count."""
    if days <= 0:
        return "expired today"
    if days == 1:
        return "expires tomorrow"
    if days <= 3:
        return f"expires in {days} days"
    return f"{days} days to expiration"


# ==================== Aggregations ====================


def daily_stats(
    trades: Iterable[TradeRecord],
    reference_day: date,
    tz: ZoneInfo | None = None,
) -> DailyStats:
    """
    Count the day's trading actions and realized P/L.

    Args:
        trades: Records to scan (any mix of users/days is fine).
        reference_day: Trading day to report on.
        tz: Journal timezone for bucketing aware timestamps.

    Returns:
        DailyStats for the reference day.
    """
    stats = DailyStats()

    for trade in trades:
        if created_on_day(trade, reference_day, tz):
            stats.total_trades += 1

        day_sells = sells_on_day(trade, reference_day, tz)
        if not day_sells:
            continue

        stats.total_trades += 1
        trade_pl = sum(sell_event_pnl(trade, sell) for sell in day_sells)

        if trade_pl >= 0:
            stats.winning_trades += 1
        else:
            stats.losing_trades += 1

        stats.total_pl += trade_pl

    stats.win_rate = calculate_win_rate(stats.winning_trades, stats.losing_trades)
    return stats


def daily_profit_loss(
    trades: Iterable[TradeRecord],
    reference_day: date,
    tz: ZoneInfo | None = None,
) -> DailyProfitLoss:
    """Realized P/L for the day, one TradeDetail per record with sells that day."""
    result = DailyProfitLoss()

    for trade in trades:
        day_sells = sells_on_day(trade, reference_day, tz)
        if not day_sells:
            continue

        trade_pl = sum(sell_event_pnl(trade, sell) for sell in day_sells)

        result.total_pl += trade_pl
        result.total_trades += 1
        if trade_pl >= 0:
            result.winning_trades += 1
        else:
            result.losing_trades += 1

        result.trade_details.append(
            TradeDetail(stock=trade.stock, contract=trade.contract, pl=trade_pl, notes=trade.notes)
        )

    return result


def _is_active_on_day(trade: TradeRecord, reference_day: date, tz: ZoneInfo | None) -> bool:
    return (
        created_on_day(trade, reference_day, tz)
        or trading_day(trade.updated_at, tz) == reference_day
        or bool(sells_on_day(trade, reference_day, tz))
    )


def _activity_entry(
    trade: TradeRecord,
    reference_day: date,
    tz: ZoneInfo | None,
) -> ActivityEntry:
    day_sells = sells_on_day(trade, reference_day, tz)
    if day_sells:
        last_sell = day_sells[-1]
        return ActivityEntry(
            trade_id=trade.trade_id,
            stock=trade.stock,
            contract=trade.contract,
            expiration=trade.expiration,
            action="SELL",
            price=last_sell.price,
            quantity=last_sell.quantity,
            pl=sell_event_pnl(trade, last_sell),
            pl_percent=pnl_percent(trade.buy_price, last_sell.price),
            notes=trade.notes,
        )

    return ActivityEntry(
        trade_id=trade.trade_id,
        stock=trade.stock,
        contract=trade.contract,
        expiration=trade.expiration,
        action="BUY",
        price=trade.buy_price,
        quantity=trade.buy_quantity,
        notes=trade.notes,
    )


def period_summary(
    trades: Iterable[TradeRecord],
    reference_day: date,
    today: date | None = None,
    tz: ZoneInfo | None = None,
) -> PeriodSummary:
    """
    Build the end-of-day report.

    Args:
        trades: All records to consider (typically every record of the users).
        reference_day: Trading day to report on.
        today: Day used for days-to-expiration; defaults to reference_day.
        tz: Journal timezone for bucketing aware timestamps.

    Returns:
        PeriodSummary with realized P/L, activity by stock and open positions by stock.
    """
    records = list(trades)
    current = today or reference_day

    activity: dict[str, list[ActivityEntry]] = {}
    for trade in records:
        if _is_active_on_day(trade, reference_day, tz):
            activity.setdefault(trade.stock, []).append(
                _activity_entry(trade, reference_day, tz)
            )

    open_positions: dict[str, list[OpenPositionEntry]] = {}
    for trade in records:
        if not trade.is_open:
            continue
        days = days_to_expiration(trade.expiration, current)
        open_positions.setdefault(trade.stock, []).append(
            OpenPositionEntry(
                trade_id=trade.trade_id,
                stock=trade.stock,
                contract=trade.contract,
                expiration=trade.expiration,
                remaining_quantity=trade.remaining_quantity,
                buy_quantity=trade.buy_quantity,
                buy_price=trade.buy_price,
                days_to_expiration=days,
                expiration_label=expiration_label(days),
                notes=trade.notes,
            )
        )

    summary = PeriodSummary(
        reference_day=reference_day,
        profit_loss=daily_profit_loss(records, reference_day, tz),
        activity=activity,
        open_positions=open_positions,
    )
    logger.debug(
        f"Period summary for {reference_day}: {len(records)} records, "
        f"{sum(len(v) for v in activity.values())} active, "
        f"{sum(len(v) for v in open_positions.values())} open"
    )
    return summary
