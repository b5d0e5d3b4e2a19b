# === MODULE PURPOSE ===
# Position ledger: the rules for opening, averaging into and selling out of
# option positions, plus decoders for the contract/expiration input field.

# === KEY CONCEPTS ===
# - Pure functions: records go in, new records come out, inputs are never mutated
# - Merge: weighted-average cost when a buy matches an OPEN position
# - Sell: partial sells keep the position OPEN, selling the remainder CLOSES it
# - CLOSED is terminal; a matching buy after close starts a new record

# === STATE MACHINE ===
# OPEN --apply_sell(partial)--> OPEN
# OPEN --apply_sell(full)-----> CLOSED
# OPEN --merge_buy------------> OPEN

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime

from src.trading.errors import InvalidDateFormat, InvalidMergeState, OverSell, ValidationError
from src.trading.models import (
    CONTRACT_MULTIPLIER,
    DEFAULT_TIMEZONE,
    SellEvent,
    TradeRecord,
    make_identity_key,
    normalize_contract,
    normalize_expiration,
    normalize_stock,
)

logger = logging.getLogger(__name__)

ZERO_DTE_TOKEN = "0dte"

_FULL_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_SHORT_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})$")
_SHORTHAND_CONTRACT_RE = re.compile(r"^(\d+(?:\.\d+)?)(C|P)$")


def _now() -> datetime:
    return datetime.now(DEFAULT_TIMEZONE)


def _today() -> date:
    return _now().date()


# ==================== Position lifecycle ====================


def create_position(
    user_id: str,
    stock: str,
    contract: str,
    expiration: date | datetime,
    price: float,
    quantity: int,
    notes: str = "",
    now: datetime | None = None,
) -> TradeRecord:
    """
    Open a new position from a first buy.

    Inputs are expected to be validated already (price > 0, quantity > 0).

    Returns:
        New OPEN TradeRecord without trade_id/revision (assigned on insert).
    """
    timestamp = now or _now()
    return TradeRecord(
        user_id=user_id,
        stock=normalize_stock(stock),
        contract=normalize_contract(contract),
        expiration=normalize_expiration(expiration),
        buy_price=price,
        buy_quantity=quantity,
        sold_quantity=0,
        sell_events=[],
        notes=notes or "",
        created_at=timestamp,
        updated_at=timestamp,
    )


def find_merge_candidate(
    open_positions: Iterable[TradeRecord],
    user_id: str,
    stock: str,
    contract: str,
    expiration: date | datetime | str,
) -> TradeRecord | None:
    """
    Find the open position a new buy should average into.

    Stock and contract matching is case/whitespace-insensitive, expiration
    is compared by calendar day only.

    Returns:
        First matching OPEN record in input order, or None.
    """
    key = make_identity_key(user_id, stock, contract, expiration)

    for position in open_positions:
        if not position.is_open:
            continue
        if position.identity_key == key:
            logger.debug(
                f"Merge candidate for {key[1]} {key[2]} {key[3]}: {position.trade_id}"
            )
            return position

    return None


def merge_buy(
    existing: TradeRecord,
    price: float,
    quantity: int,
    notes: str = "",
    now: datetime | None = None,
) -> TradeRecord:
    """
    Average a new buy into an open position.

    buy_price becomes (p1*n1 + p2*n2) / (n1 + n2). Notes are replaced only
    when the incoming notes are non-empty.

    Raises:
        InvalidMergeState: If the position is already closed.
    """
    if not existing.is_open:
        raise InvalidMergeState(
            f"Cannot merge into closed position {existing.trade_id} "
            f"({existing.stock} {existing.contract}); create a new position instead"
        )

    total_quantity = existing.buy_quantity + quantity
    total_cost = existing.buy_price * existing.buy_quantity + price * quantity

    return replace(
        existing,
        buy_price=total_cost / total_quantity,
        buy_quantity=total_quantity,
        notes=notes if notes else existing.notes,
        sell_events=list(existing.sell_events),
        updated_at=now or _now(),
    )


def apply_sell(
    existing: TradeRecord,
    sell_price: float,
    sell_quantity: int,
    now: datetime | None = None,
) -> TradeRecord:
    """
    Record a sell against an open position.

    Raises:
        OverSell: If sell_quantity is not positive or exceeds the remaining
            quantity. The input record is left unchanged.
    """
    remaining = existing.remaining_quantity
    if sell_quantity <= 0 or sell_quantity > remaining:
        raise OverSell(sell_quantity, remaining)

    timestamp = now or _now()
    return replace(
        existing,
        sold_quantity=existing.sold_quantity + sell_quantity,
        sell_events=[
            *existing.sell_events,
            SellEvent(price=sell_price, quantity=sell_quantity, timestamp=timestamp),
        ],
        updated_at=timestamp,
    )


# ==================== P/L ====================


def realized_pnl(buy_price: float, sell_price: float, quantity: int) -> float:
    """Realized P/L of selling `quantity` contracts bought at `buy_price`."""
    return (sell_price - buy_price) * quantity * CONTRACT_MULTIPLIER


def sell_event_pnl(record: TradeRecord, event: SellEvent) -> float:
    """Realized P/L of one sell event against the record's average cost."""
    return realized_pnl(record.buy_price, event.price, event.quantity)


def pnl_percent(buy_price: float, sell_price: float) -> float:
    """P/L as a percentage of cost; 0 when the cost basis is 0."""
    if buy_price <= 0:
        return 0.0
    return (sell_price - buy_price) / buy_price * 100


# ==================== Input decoding ====================


def parse_contract_expiration(raw_token: str, today: date | None = None) -> date:
    """
    Decode an expiration token.

    Accepted formats:
        0dte        - today (case-insensitive)
        MM/DD/YYYY  - explicit date
        MM/DD       - current year

    Past dates are NOT rejected here, see ensure_not_expired().

    Raises:
        InvalidDateFormat: For anything else, including impossible dates.
    """
    token = raw_token.strip()
    current = today or _today()

    if token.lower() == ZERO_DTE_TOKEN:
        return current

    full_match = _FULL_DATE_RE.match(token)
    if full_match:
        month, day, year = (int(g) for g in full_match.groups())
        return _build_date(token, year, month, day)

    short_match = _SHORT_DATE_RE.match(token)
    if short_match:
        month, day = (int(g) for g in short_match.groups())
        return _build_date(token, current.year, month, day)

    raise InvalidDateFormat(raw_token)


def _build_date(token: str, year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidDateFormat(token) from e


def ensure_not_expired(expiration: date, today: date | None = None) -> None:
    """
    Reject an expiration strictly before today (date-only comparison).

    Raises:
        ValidationError: If the expiration is in the past.
    """
    current = today or _today()
    if expiration < current:
        raise ValidationError(
            f"Expiration date {expiration.isoformat()} cannot be in the past"
        )


def parse_contract(raw_contract: str) -> str:
    """
    Normalize a contract descriptor.

    Examples:
        "150c"      -> "CALL $150"
        "P$95"      -> "PUT $95"
        "call $150" -> "CALL $150"
    """
    contract = " ".join(raw_contract.split()).upper()

    shorthand = _SHORTHAND_CONTRACT_RE.match(contract)
    if shorthand:
        strike, kind = shorthand.groups()
        return f"{'CALL' if kind == 'C' else 'PUT'} ${strike}"

    if not contract.startswith(("CALL", "PUT")) and "$" in contract:
        kind, strike = contract.split("$", 1)
        if kind.strip() == "C":
            return f"CALL ${strike.strip()}"
        if kind.strip() == "P":
            return f"PUT ${strike.strip()}"

    return contract


def split_contract_expiration(raw: str) -> tuple[str, str]:
    """
    Split the combined "CALL $150 05/17" input into contract and expiration token.

    The last whitespace-separated token is the expiration.

    Raises:
        ValidationError: If fewer than two tokens are present.
    """
    parts = raw.strip().split()
    if len(parts) < 2:
        raise ValidationError(
            'Invalid format for contract & expiration. '
            'Please use format: "CALL $150 05/17" or "150C 05/17"'
        )
    return parse_contract(" ".join(parts[:-1])), parts[-1]
