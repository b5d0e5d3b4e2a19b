# === MODULE PURPOSE ===
# Plain-text rendering of trade alerts and summaries for the chat relay.

# === KEY CONCEPTS ===
# - Pure functions: records/reports in, message text out
# - One message per alert; sections separated by blank lines
# - Money is shown with two decimals and an explicit sign for P/L

from __future__ import annotations

from datetime import date

from src.trading.models import TradeRecord
from src.trading.performance import DailyProfitLoss, DailyStats, PeriodSummary
from src.trading.position_ledger import pnl_percent, realized_pnl

DISCLAIMER = (
    "⚠️ Not Financial Advice. Always size positions appropriately and set your own stop losses."
)


def format_date(value: date) -> str:
    return value.strftime("%m/%d/%Y")


def format_price(value: float) -> str:
    return f"${value:.2f}"


def format_pl(value: float) -> str:
    """Signed dollar amount, e.g. +$280.00 / -$480.00."""
    sign = "+" if value >= 0 else "-"
    return f"{sign}${abs(value):,.2f}"


def format_percent(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}%"


def format_quick_stats(stats: DailyStats) -> str:
    """Today's quick stats block appended to buy alerts."""
    return (
        "📈 Today's Quick Stats\n"
        f"Trades: {stats.total_trades} ({stats.winning_trades}W/{stats.losing_trades}L)\n"
        f"Win Rate: {stats.win_rate}%\n"
        f"P/L: {format_pl(stats.total_pl)}"
    )


def format_buy_alert(
    record: TradeRecord,
    price: float,
    quantity: int,
    previous: TradeRecord | None,
    stats: DailyStats | None = None,
    notes: str = "",
) -> str:
    """
    Render a buy alert.

    Args:
        record: Position after the buy.
        price: Price of this buy.
        quantity: Quantity of this buy.
        previous: Position before the buy when it was averaged into, else None.
        stats: Today's quick stats for the user.
        notes: Notes entered with this buy.
    """
    option_line = f"{record.contract} | Exp. {format_date(record.expiration)}"

    if previous is None:
        lines = [
            "📢 New Trade Alert – BUY",
            "",
            f"Stock: {record.stock}",
            f"Option: {option_line}",
            f"Buy Price: {format_price(price)}",
            f"Quantity: {quantity}",
        ]
    else:
        lines = [
            "📊 Position Averaged – BUY",
            "",
            f"Stock: {record.stock}",
            f"Option: {option_line}",
            f"Buy Price: New: {format_price(price)} → Avg: {format_price(record.buy_price)} "
            f"(from {format_price(previous.buy_price)})",
            f"Quantity: +{quantity} (Total: {record.buy_quantity})",
        ]

    if stats is not None:
        lines += ["", format_quick_stats(stats)]

    if notes:
        lines += ["", f"Notes: {notes}"]

    if previous is not None:
        lines += [
            "",
            "Position Update: "
            f"Added {quantity} contracts to {record.stock} position. "
            f"Total Position: {record.buy_quantity} contracts @ "
            f"{format_price(record.buy_price)} avg",
        ]

    lines += ["", DISCLAIMER]
    return "\n".join(lines)


def format_sell_alert(
    before: TradeRecord,
    after: TradeRecord,
    sell_price: float,
    sell_quantity: int,
    analysis: str = "",
    notes: str = "",
) -> str:
    """
    Render a sell alert.

    Args:
        before: Position as read before the sell (its buy_price is the cost basis).
        after: Position after the sell.
        sell_price: Price of this sell.
        sell_quantity: Quantity of this sell.
        analysis: LLM commentary or placeholder.
        notes: Notes entered with this sell.
    """
    pl = realized_pnl(before.buy_price, sell_price, sell_quantity)
    percent = pnl_percent(before.buy_price, sell_price)

    if sell_quantity == before.buy_quantity:
        quantity_str = str(sell_quantity)
    else:
        share = sell_quantity / before.buy_quantity * 100
        quantity_str = f"{sell_quantity} of {before.buy_quantity} ({share:.0f}%)"

    if after.is_open:
        remaining = after.remaining_quantity
        status = f"PARTIAL SELL - {remaining} contract{'s' if remaining > 1 else ''} remaining"
    else:
        status = "CLOSED - Position fully exited"

    lines = [
        "📢 New Trade Alert – SELL",
        "",
        f"Stock: {before.stock}",
        f"Option: {before.contract} | Exp. {format_date(before.expiration)}",
        f"Buy Price: {format_price(before.buy_price)}",
        f"Sell Price: {format_price(sell_price)}",
        f"Quantity: {quantity_str}",
        f"Profit/Loss: {format_pl(pl)} ({format_percent(percent)})",
    ]

    if notes:
        lines.append(f"Notes: {notes}")

    lines.append(f"Status: {status}")

    if analysis:
        lines += ["", f"🤖 {analysis}"]

    lines += ["", f"Trade ID: {before.trade_id}"]
    return "\n".join(lines)


def format_profit_loss(profit_loss: DailyProfitLoss) -> str:
    lines = [f"Total: {format_pl(profit_loss.total_pl)}"]

    if profit_loss.total_trades > 0:
        lines.append(
            f"Trades: {profit_loss.total_trades} "
            f"({profit_loss.winning_trades} winning, {profit_loss.losing_trades} losing)"
        )
        lines.append(f"Win Rate: {profit_loss.win_rate}%")
        for detail in profit_loss.trade_details:
            lines.append(f"• {detail.stock} {detail.contract}: {format_pl(detail.pl)}")
            if detail.notes:
                lines.append(f"  📝 {detail.notes}")

    return "\n".join(lines)


def format_daily_summary(summary: PeriodSummary) -> str:
    """Render the end-of-day report."""
    lines = [
        "📊 Daily Trading Summary",
        f"Here's your trading summary for {format_date(summary.reference_day)}",
        "",
        "📈 Daily Profit/Loss",
        format_profit_loss(summary.profit_loss),
        "",
        "🔄 Today's Trades",
    ]

    if not summary.activity:
        lines.append("No trades were made today.")
    for stock, entries in summary.activity.items():
        lines.append(stock)
        for entry in entries:
            exp = format_date(entry.expiration)
            if entry.action == "SELL":
                lines.append(
                    f"• SELL {entry.quantity} {entry.contract} (Exp. {exp}): "
                    f"{format_price(entry.price)} → {format_pl(entry.pl or 0.0)} "
                    f"({format_percent(entry.pl_percent or 0.0)})"
                )
            else:
                lines.append(
                    f"• BUY {entry.quantity} {entry.contract} (Exp. {exp}): "
                    f"{format_price(entry.price)}"
                )
            if entry.notes:
                lines.append(f"  📝 {entry.notes}")

    lines += ["", "📝 Open Positions"]

    if not summary.open_positions:
        lines.append("You have no open positions.")
    for stock, positions in summary.open_positions.items():
        lines.append(stock)
        for pos in positions:
            lines.append(
                f"• {pos.remaining_quantity} {pos.contract} @ {format_price(pos.buy_price)} "
                f"(Exp. {format_date(pos.expiration)})"
            )
            marker = "⚠️" if pos.is_urgent else "⏱️"
            label = pos.expiration_label.upper() if pos.is_urgent else pos.expiration_label
            lines.append(f"  {marker} {label}")
            if pos.notes:
                lines.append(f"  📝 {pos.notes}")

    return "\n".join(lines)


def format_open_positions(records: list[TradeRecord]) -> str:
    """Render a user's open positions list."""
    if not records:
        return "You have no open trades!"

    lines = ["Your Open Trades"]
    for index, record in enumerate(records, start=1):
        lines += [
            "",
            f"{index}. {record.stock} - {record.contract}",
            f"Bought: {format_date(record.created_at.date())} at {format_price(record.buy_price)}",
            f"Expiration: {format_date(record.expiration)}",
            f"Quantity: {record.remaining_quantity}/{record.buy_quantity}",
            f"Notes: {record.notes or 'None'}",
        ]
    return "\n".join(lines)
