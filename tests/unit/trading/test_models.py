# === MODULE PURPOSE ===
# Tests for trade record models and normalization helpers.

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from src.trading.models import (
    SellEvent,
    TradeRecord,
    make_identity_key,
    normalize_expiration,
    trading_day,
)

NY = ZoneInfo("America/New_York")
T0 = datetime(2025, 6, 2, 10, 0, tzinfo=NY)


def _record(**overrides):
    fields = dict(
        user_id="user-1",
        stock="AAPL",
        contract="CALL $150",
        expiration=date(2025, 6, 20),
        buy_price=3.6,
        buy_quantity=5,
        created_at=T0,
        updated_at=T0,
    )
    fields.update(overrides)
    return TradeRecord(**fields)


class TestNormalization:
    def test_expiration_ignores_time_of_day_and_offset(self):
        assert normalize_expiration("2025-06-20T23:00Z") == date(2025, 6, 20)
        assert normalize_expiration("2025-06-20T01:00Z") == date(2025, 6, 20)
        assert normalize_expiration(datetime(2025, 6, 20, 15, 0, tzinfo=NY)) == date(2025, 6, 20)
        assert normalize_expiration(date(2025, 6, 20)) == date(2025, 6, 20)

    def test_identity_key(self):
        assert make_identity_key("u", " aapl ", "call  $150 ", "2025-06-20") == make_identity_key(
            "u", "AAPL", "CALL $150", date(2025, 6, 20)
        )

    def test_trading_day_converts_aware_timestamps(self):
        late_utc = datetime(2025, 6, 3, 2, 0, tzinfo=timezone.utc)
        assert trading_day(late_utc, NY) == date(2025, 6, 2)
        assert trading_day(late_utc, ZoneInfo("UTC")) == date(2025, 6, 3)

    def test_trading_day_naive_as_is(self):
        assert trading_day(datetime(2025, 6, 3, 2, 0), NY) == date(2025, 6, 3)


class TestTradeRecord:
    def test_open_state(self):
        record = _record(sold_quantity=2)
        assert record.is_open is True
        assert record.remaining_quantity == 3

    def test_closed_state(self):
        record = _record(sold_quantity=5)
        assert record.is_open is False
        assert record.remaining_quantity == 0

    def test_display_string(self):
        record = _record(sold_quantity=2)
        assert record.get_display_string() == "AAPL CALL $150 (Exp. 06/20/2025) 3/5 @ $3.60"

    def test_to_dict(self):
        record = _record(
            trade_id="t-1",
            revision="2-abc",
            sold_quantity=2,
            sell_events=[SellEvent(price=5.0, quantity=2, timestamp=T0)],
            notes="scalp",
        )

        data = record.to_dict()

        assert data["trade_id"] == "t-1"
        assert data["expiration"] == "2025-06-20"
        assert data["is_open"] is True
        assert data["sell_events"][0] == {"price": 5.0, "quantity": 2, "timestamp": T0.isoformat()}
        assert data["created_at"] == T0.isoformat()

    def test_to_dict_reports_derived_state(self):
        assert _record(sold_quantity=5).to_dict()["is_open"] is False


class TestSellEvent:
    def test_from_stored_json(self):
        """Sell events come back from the JSONB column as plain dicts."""
        event = SellEvent.from_dict({"price": "4.5", "quantity": 1, "timestamp": T0.isoformat()})

        assert event == SellEvent(price=4.5, quantity=1, timestamp=T0)
