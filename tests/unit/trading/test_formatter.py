# === MODULE PURPOSE ===
# Tests for chat message rendering.

from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo

from src.trading.formatter import (
    DISCLAIMER,
    format_buy_alert,
    format_daily_summary,
    format_open_positions,
    format_percent,
    format_pl,
    format_sell_alert,
)
from src.trading.performance import DailyStats, period_summary
from src.trading.position_ledger import apply_sell, create_position, merge_buy

NY = ZoneInfo("America/New_York")
DAY = date(2025, 6, 2)
T0 = datetime(2025, 6, 2, 10, 0, tzinfo=NY)


def _position(stock="AAPL", qty=2, price=3.0, exp=date(2025, 6, 20), now=T0):
    record = create_position("user-1", stock, "CALL $150", exp, price, qty, now=now)
    return replace(record, trade_id=f"{stock}-1", revision="1-a")


class TestValueFormatting:
    def test_pl(self):
        assert format_pl(280) == "+$280.00"
        assert format_pl(-480) == "-$480.00"
        assert format_pl(0) == "+$0.00"
        assert format_pl(12345.5) == "+$12,345.50"

    def test_percent(self):
        assert format_percent(38.888) == "+38.89%"
        assert format_percent(-44.444) == "-44.44%"


class TestBuyAlert:
    def test_new_position(self):
        record = _position()
        stats = DailyStats(total_trades=3, winning_trades=1, losing_trades=1, win_rate=50, total_pl=-200)

        message = format_buy_alert(record, 3.0, 2, None, stats, notes="earnings")

        assert message.startswith("📢 New Trade Alert – BUY")
        assert "Stock: AAPL" in message
        assert "Option: CALL $150 | Exp. 06/20/2025" in message
        assert "Buy Price: $3.00" in message
        assert "Quantity: 2" in message
        assert "Trades: 3 (1W/1L)" in message
        assert "Win Rate: 50%" in message
        assert "P/L: -$200.00" in message
        assert "Notes: earnings" in message
        assert message.endswith(DISCLAIMER)

    def test_averaged_position(self):
        previous = _position()
        merged = merge_buy(previous, 4.0, 3, now=T0)

        message = format_buy_alert(merged, 4.0, 3, previous)

        assert message.startswith("📊 Position Averaged – BUY")
        assert "Buy Price: New: $4.00 → Avg: $3.60 (from $3.00)" in message
        assert "Quantity: +3 (Total: 5)" in message
        assert "Total Position: 5 contracts @ $3.60 avg" in message
        assert "Quick Stats" not in message


class TestSellAlert:
    def test_partial_sell(self):
        before = merge_buy(_position(), 4.0, 3, now=T0)
        after = apply_sell(before, 5.0, 2, now=T0)

        message = format_sell_alert(before, after, 5.0, 2, analysis="Nice trim.", notes="into strength")

        assert "Buy Price: $3.60" in message
        assert "Sell Price: $5.00" in message
        assert "Quantity: 2 of 5 (40%)" in message
        assert "Profit/Loss: +$280.00 (+38.89%)" in message
        assert "Notes: into strength" in message
        assert "Status: PARTIAL SELL - 3 contracts remaining" in message
        assert "🤖 Nice trim." in message
        assert message.endswith("Trade ID: AAPL-1")

    def test_closing_sell(self):
        before = apply_sell(merge_buy(_position(), 4.0, 3, now=T0), 5.0, 2, now=T0)
        after = apply_sell(before, 2.0, 3, now=T0)

        message = format_sell_alert(before, after, 2.0, 3)

        assert "Profit/Loss: -$480.00 (-44.44%)" in message
        assert "Status: CLOSED - Position fully exited" in message
        assert "🤖" not in message

    def test_single_contract_remaining(self):
        before = _position()
        after = apply_sell(before, 5.0, 1, now=T0)

        message = format_sell_alert(before, after, 5.0, 1)

        assert "PARTIAL SELL - 1 contract remaining" in message

    def test_full_quantity_shown_plainly(self):
        before = _position()
        after = apply_sell(before, 5.0, 2, now=T0)

        assert "Quantity: 2\n" in format_sell_alert(before, after, 5.0, 2)


class TestDailySummary:
    def test_empty_day(self):
        message = format_daily_summary(period_summary([], DAY, tz=NY))

        assert "Here's your trading summary for 06/02/2025" in message
        assert "Total: +$0.00" in message
        assert "No trades were made today." in message
        assert "You have no open positions." in message

    def test_full_day(self):
        sold = apply_sell(_position("MSFT", price=3.6), 5.0, 1, now=T0)
        urgent = replace(_position("TSLA", exp=date(2025, 6, 3)), notes="lotto")

        message = format_daily_summary(period_summary([sold, urgent], DAY, tz=NY))

        assert "Trades: 1 (1 winning, 0 losing)" in message
        assert "Win Rate: 100%" in message
        assert "• MSFT CALL $150: +$140.00" in message
        assert "• SELL 1 CALL $150 (Exp. 06/20/2025): $5.00 → +$140.00 (+38.89%)" in message
        assert "• BUY 2 CALL $150 (Exp. 06/03/2025): $3.00" in message
        assert "⚠️ EXPIRES TOMORROW" in message
        assert "⏱️ 18 days to expiration" in message
        assert "📝 lotto" in message


class TestOpenPositions:
    def test_no_positions(self):
        assert format_open_positions([]) == "You have no open trades!"

    def test_lists_positions(self):
        record = apply_sell(_position(qty=5), 4.0, 2, now=T0)

        message = format_open_positions([record])

        assert "1. AAPL - CALL $150" in message
        assert "Bought: 06/02/2025 at $3.00" in message
        assert "Quantity: 3/5" in message
        assert "Notes: None" in message
