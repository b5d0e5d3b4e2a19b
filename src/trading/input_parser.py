# === MODULE PURPOSE ===
# Validates raw command input (strings from chat forms / HTTP bodies) and
# turns it into typed buy/sell requests for the trade service.

# === KEY CONCEPTS ===
# - Everything that reaches the ledger has passed through here
# - Failures raise ValidationError (InvalidDateFormat for expiration tokens)
# - The past-expiration policy is applied here, not in the date decoder

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any

from src.trading.errors import ValidationError
from src.trading.position_ledger import (
    ensure_not_expired,
    parse_contract_expiration,
    split_contract_expiration,
)


@dataclass(frozen=True)
class BuyRequest:
    """A validated buy: open a position or average into an existing one."""

    user_id: str
    stock: str
    contract: str
    expiration: date
    price: float
    quantity: int
    notes: str = ""


@dataclass(frozen=True)
class SellRequest:
    """A validated sell against an existing position."""

    user_id: str
    trade_id: str
    price: float
    quantity: int
    notes: str = ""


def parse_price(value: Any, field_name: str = "price") -> float:
    """Parse a positive, finite price; a leading "$" is allowed."""
    text = str(value).strip().lstrip("$").strip()
    try:
        price = float(text)
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e

    if not math.isfinite(price) or price <= 0:
        raise ValidationError(f"{field_name.capitalize()} must be a positive number, got {value!r}")
    return price


def parse_quantity(value: Any, field_name: str = "quantity") -> int:
    """Parse a positive whole number of contracts."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field_name.capitalize()} must be a whole number, got {value!r}")
        value = int(value)

    try:
        quantity = int(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e

    if quantity <= 0:
        raise ValidationError(f"{field_name.capitalize()} must be positive, got {value!r}")
    return quantity


def parse_buy_request(
    user_id: str,
    stock: str,
    contract_expiration: str,
    quantity: Any,
    price: Any,
    notes: str | None = "",
    today: date | None = None,
) -> BuyRequest:
    """
    Validate the fields of an "add trade" form.

    Args:
        user_id: Owner of the position.
        stock: Underlying symbol.
        contract_expiration: Combined field, e.g. "CALL $150 05/17" or "150C 0dte".
        quantity: Number of contracts.
        price: Price per contract.
        notes: Optional free text.
        today: Reference day for 0dte / past-date checks.

    Raises:
        ValidationError: Missing/invalid field or expiration in the past.
        InvalidDateFormat: Unparsable expiration token.
    """
    if not user_id:
        raise ValidationError("User id is required")

    symbol = (stock or "").strip().upper()
    if not symbol:
        raise ValidationError("Stock symbol is required")

    contract, token = split_contract_expiration(contract_expiration or "")
    expiration = parse_contract_expiration(token, today=today)
    ensure_not_expired(expiration, today=today)

    return BuyRequest(
        user_id=user_id,
        stock=symbol,
        contract=contract,
        expiration=expiration,
        price=parse_price(price),
        quantity=parse_quantity(quantity),
        notes=(notes or "").strip(),
    )


def parse_sell_request(
    user_id: str,
    trade_id: str,
    price: Any,
    quantity: Any,
    notes: str | None = "",
) -> SellRequest:
    """
    Validate the fields of a "sell" form.

    The remaining-quantity check needs the stored record and happens in the ledger.

    Raises:
        ValidationError: Missing/invalid field.
    """
    if not user_id:
        raise ValidationError("User id is required")
    if not trade_id:
        raise ValidationError("Trade id is required")

    return SellRequest(
        user_id=user_id,
        trade_id=trade_id,
        price=parse_price(price, "sell price"),
        quantity=parse_quantity(quantity, "sell quantity"),
        notes=(notes or "").strip(),
    )
