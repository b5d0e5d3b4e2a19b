# === MODULE PURPOSE ===
# Tests for the position ledger.
# Covers opening, weighted-average merges, partial/full sells, P/L math and
# the contract/expiration decoders.

from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from src.trading.errors import InvalidDateFormat, InvalidMergeState, OverSell, ValidationError
from src.trading.position_ledger import (
    apply_sell,
    create_position,
    ensure_not_expired,
    find_merge_candidate,
    merge_buy,
    parse_contract,
    parse_contract_expiration,
    pnl_percent,
    realized_pnl,
    sell_event_pnl,
    split_contract_expiration,
)

NY = ZoneInfo("America/New_York")
T0 = datetime(2025, 6, 2, 10, 0, tzinfo=NY)
EXP = date(2025, 6, 20)


@pytest.fixture
def position():
    """AAPL CALL $150 2 @ 3.00, stored with an id."""
    record = create_position("user-1", "AAPL", "CALL $150", EXP, 3.00, 2, now=T0)
    return replace(record, trade_id="t-1", revision="1-abc")


class TestCreatePosition:
    """Tests for create_position."""

    def test_new_position_is_open(self, position):
        assert position.is_open is True
        assert position.sold_quantity == 0
        assert position.remaining_quantity == 2
        assert position.sell_events == []
        assert position.created_at == T0
        assert position.updated_at == T0

    def test_normalizes_identity_fields(self):
        record = create_position(
            "user-1", " aapl ", "  CALL $150 ", datetime(2025, 6, 20, 23, 0), 1.0, 1, now=T0
        )
        assert record.stock == "AAPL"
        assert record.contract == "CALL $150"
        assert record.expiration == EXP


class TestFindMergeCandidate:
    """Tests for identity matching."""

    def test_matches_case_whitespace_and_time_of_day(self, position):
        stored = replace(position, expiration=EXP)

        found = find_merge_candidate(
            [stored], "user-1", "aapl ", " call $150", "2025-06-20T23:00Z"
        )
        assert found is stored

        found = find_merge_candidate([stored], "user-1", "AAPL", "CALL $150", "2025-06-20T01:00Z")
        assert found is stored

    def test_different_user_or_fields_do_not_match(self, position):
        assert find_merge_candidate([position], "user-2", "AAPL", "CALL $150", EXP) is None
        assert find_merge_candidate([position], "user-1", "MSFT", "CALL $150", EXP) is None
        assert find_merge_candidate([position], "user-1", "AAPL", "PUT $150", EXP) is None
        assert (
            find_merge_candidate([position], "user-1", "AAPL", "CALL $150", date(2025, 6, 27))
            is None
        )

    def test_closed_positions_are_skipped(self, position):
        closed = apply_sell(position, 4.0, 2, now=T0)
        assert find_merge_candidate([closed], "user-1", "AAPL", "CALL $150", EXP) is None

    def test_first_match_wins(self, position):
        second = replace(position, trade_id="t-2")
        assert find_merge_candidate([position, second], "user-1", "AAPL", "CALL $150", EXP) is position


class TestMergeBuy:
    """Tests for weighted-average merges."""

    def test_weighted_average(self, position):
        merged = merge_buy(position, 4.00, 3, now=T0)

        assert merged.buy_quantity == 5
        assert merged.buy_price == pytest.approx(3.60)
        assert merged.trade_id == "t-1"
        assert merged.revision == "1-abc"

    @pytest.mark.parametrize(
        "p1,n1,p2,n2",
        [(1.25, 1, 2.75, 7), (10.0, 4, 0.5, 2), (3.3, 3, 3.3, 9)],
    )
    def test_weighted_average_formula(self, p1, n1, p2, n2):
        record = create_position("u", "SPY", "PUT $500", EXP, p1, n1, now=T0)
        merged = merge_buy(record, p2, n2, now=T0)
        assert merged.buy_price == pytest.approx((p1 * n1 + p2 * n2) / (n1 + n2))

    def test_equal_buys_keep_price(self, position):
        merged = merge_buy(position, 3.00, 2, now=T0)
        assert merged.buy_price == pytest.approx(3.00)
        assert merged.buy_quantity == 4

    def test_input_not_mutated(self, position):
        merge_buy(position, 4.00, 3, now=T0)
        assert position.buy_quantity == 2
        assert position.buy_price == 3.00

    def test_notes_replaced_only_when_given(self, position):
        noted = replace(position, notes="swing")
        assert merge_buy(noted, 4.0, 1, notes="", now=T0).notes == "swing"
        assert merge_buy(noted, 4.0, 1, notes="added on dip", now=T0).notes == "added on dip"

    def test_updates_timestamp(self, position):
        later = datetime(2025, 6, 3, 11, 0, tzinfo=NY)
        merged = merge_buy(position, 4.0, 1, now=later)
        assert merged.updated_at == later
        assert merged.created_at == T0

    def test_merge_into_closed_raises(self, position):
        closed = apply_sell(position, 4.0, 2, now=T0)
        with pytest.raises(InvalidMergeState):
            merge_buy(closed, 4.0, 1, now=T0)


class TestApplySell:
    """Tests for partial and full sells."""

    def test_partial_sell_keeps_open(self, position):
        sold = apply_sell(position, 5.0, 1, now=T0)

        assert sold.is_open is True
        assert sold.sold_quantity == 1
        assert sold.remaining_quantity == 1
        assert len(sold.sell_events) == 1
        assert sold.sell_events[0].price == 5.0
        assert sold.sell_events[0].quantity == 1
        assert sold.sell_events[0].timestamp == T0

    def test_selling_remainder_closes(self, position):
        sold = apply_sell(apply_sell(position, 5.0, 1, now=T0), 6.0, 1, now=T0)

        assert sold.is_open is False
        assert sold.remaining_quantity == 0
        assert [e.price for e in sold.sell_events] == [5.0, 6.0]

    def test_no_sell_after_close(self, position):
        closed = apply_sell(position, 5.0, 2, now=T0)
        with pytest.raises(OverSell) as exc_info:
            apply_sell(closed, 5.0, 1, now=T0)
        assert exc_info.value.remaining == 0

    def test_oversell_leaves_record_unchanged(self):
        record = create_position("u", "AAPL", "CALL $150", EXP, 3.0, 5, now=T0)
        snapshot = replace(record, sell_events=list(record.sell_events))

        with pytest.raises(OverSell) as exc_info:
            apply_sell(record, 4.0, 6, now=T0)

        assert exc_info.value.requested == 6
        assert exc_info.value.remaining == 5
        assert record == snapshot

    def test_oversell_against_new_remaining(self, position):
        partially = apply_sell(position, 5.0, 1, now=T0)
        with pytest.raises(OverSell):
            apply_sell(partially, 5.0, 2, now=T0)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_raises(self, position, quantity):
        with pytest.raises(OverSell):
            apply_sell(position, 5.0, quantity, now=T0)

    def test_input_not_mutated(self, position):
        apply_sell(position, 5.0, 1, now=T0)
        assert position.sold_quantity == 0
        assert position.sell_events == []


class TestProfitLoss:
    """Tests for P/L math."""

    def test_realized_pnl(self):
        assert realized_pnl(3.60, 5.00, 2) == pytest.approx(280.0)
        assert realized_pnl(3.60, 2.00, 3) == pytest.approx(-480.0)

    def test_sell_event_pnl_uses_average_cost(self, position):
        merged = merge_buy(position, 4.0, 3, now=T0)
        sold = apply_sell(merged, 5.0, 2, now=T0)
        assert sell_event_pnl(sold, sold.sell_events[0]) == pytest.approx(280.0)

    def test_pnl_percent(self):
        assert pnl_percent(2.0, 3.0) == pytest.approx(50.0)
        assert pnl_percent(4.0, 3.0) == pytest.approx(-25.0)
        assert pnl_percent(0.0, 3.0) == 0.0


class TestLifecycleScenario:
    """Full open -> average -> partial sell -> close scenario."""

    def test_aapl_scenario(self):
        record = create_position("user-1", "AAPL", "CALL $150", EXP, 3.00, 2, now=T0)

        record = merge_buy(record, 4.00, 3, now=T0)
        assert record.buy_quantity == 5
        assert record.buy_price == pytest.approx(3.60)

        record = apply_sell(record, 5.00, 2, now=T0)
        assert record.sold_quantity == 2
        assert record.is_open is True
        assert record.remaining_quantity == 3
        assert sell_event_pnl(record, record.sell_events[-1]) == pytest.approx(280.0)

        record = apply_sell(record, 2.00, 3, now=T0)
        assert record.is_open is False
        assert sell_event_pnl(record, record.sell_events[-1]) == pytest.approx(-480.0)


class TestParseContractExpiration:
    """Tests for the expiration token decoder."""

    TODAY = date(2025, 6, 2)

    @pytest.mark.parametrize("token", ["0dte", "0DTE", " 0Dte "])
    def test_zero_dte_is_today(self, token):
        assert parse_contract_expiration(token, today=self.TODAY) == self.TODAY

    def test_full_date(self):
        assert parse_contract_expiration("06/20/2026", today=self.TODAY) == date(2026, 6, 20)

    def test_short_date_uses_current_year(self):
        assert parse_contract_expiration("6/20", today=self.TODAY) == date(2025, 6, 20)

    def test_past_dates_are_decoded(self):
        assert parse_contract_expiration("01/02", today=self.TODAY) == date(2025, 1, 2)

    @pytest.mark.parametrize("token", ["13/40", "02/30", "2025-06-20", "tomorrow", "", "6/20/25"])
    def test_invalid_tokens(self, token):
        with pytest.raises(InvalidDateFormat):
            parse_contract_expiration(token, today=self.TODAY)

    def test_invalid_date_is_validation_error(self):
        with pytest.raises(ValidationError):
            parse_contract_expiration("13/40", today=self.TODAY)


class TestEnsureNotExpired:
    def test_today_allowed(self):
        ensure_not_expired(date(2025, 6, 2), today=date(2025, 6, 2))

    def test_past_rejected(self):
        with pytest.raises(ValidationError, match="past"):
            ensure_not_expired(date(2025, 6, 1), today=date(2025, 6, 2))


class TestContractDecoding:
    """Tests for contract descriptors and the combined input field."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("150c", "CALL $150"),
            ("95P", "PUT $95"),
            ("12.5c", "CALL $12.5"),
            ("P$95", "PUT $95"),
            ("c $150", "CALL $150"),
            ("call   $150", "CALL $150"),
            ("PUT $95", "PUT $95"),
        ],
    )
    def test_parse_contract(self, raw, expected):
        assert parse_contract(raw) == expected

    def test_split(self):
        assert split_contract_expiration("CALL $150 05/17") == ("CALL $150", "05/17")
        assert split_contract_expiration(" 150c 0dte ") == ("CALL $150", "0dte")

    @pytest.mark.parametrize("raw", ["", "05/17", "   "])
    def test_split_requires_two_tokens(self, raw):
        with pytest.raises(ValidationError):
            split_contract_expiration(raw)
