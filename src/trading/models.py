# === MODULE PURPOSE ===
# Data models for option trade records.
# TradeRecord is the only persistent entity of the journal.

# === KEY CONCEPTS ===
# - Position: one TradeRecord per (user, stock, contract, expiration day)
# - SellEvent: append-only history of partial/full exits
# - Identity key: normalized tuple deciding whether two buys are the same position
# - State: OPEN while sold_quantity < buy_quantity, CLOSED otherwise (terminal)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

# Standard option contract share count
CONTRACT_MULTIPLIER = 100

# Journal timezone used to bucket timestamps into trading days
DEFAULT_TIMEZONE = ZoneInfo("America/New_York")

IdentityKey = tuple[str, str, str, date]


def normalize_stock(stock: str) -> str:
    """Upper-case and trim a stock symbol."""
    return stock.strip().upper()


def normalize_contract(contract: str) -> str:
    """Trim a contract descriptor and collapse inner whitespace."""
    return " ".join(contract.split())


def normalize_expiration(expiration: date | datetime | str) -> date:
    """
    Reduce an expiration to its calendar day.

    Time-of-day and UTC offset are dropped without conversion, so
    "2025-06-20T23:00Z" and "2025-06-20T01:00Z" are the same day.
    """
    if isinstance(expiration, str):
        expiration = datetime.fromisoformat(expiration.replace("Z", "+00:00"))
    if isinstance(expiration, datetime):
        return expiration.date()
    return expiration


def make_identity_key(
    user_id: str,
    stock: str,
    contract: str,
    expiration: date | datetime | str,
) -> IdentityKey:
    """Build the normalized identity key for a position."""
    return (
        user_id,
        normalize_stock(stock),
        normalize_contract(contract).upper(),
        normalize_expiration(expiration),
    )


def trading_day(timestamp: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar day of a timestamp in the journal timezone (naive values as-is)."""
    if timestamp.tzinfo is None:
        return timestamp.date()
    return timestamp.astimezone(tz or DEFAULT_TIMEZONE).date()


@dataclass(frozen=True)
class SellEvent:
    """A single (partial or full) exit from a position."""

    price: float
    quantity: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "price": self.price,
            "quantity": self.quantity,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SellEvent":
        """Create from dictionary."""
        return cls(
            price=float(data["price"]),
            quantity=int(data["quantity"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class TradeRecord:
    """
    One option position of one user.

    buy_price is the weighted-average cost across merged buys.
    sold_quantity never exceeds buy_quantity; sell_events is only appended to.

    trade_id and revision are assigned by the trade store. Every write must
    carry the revision that was last read, the store rejects stale ones.
    """

    user_id: str
    stock: str
    contract: str
    expiration: date
    buy_price: float
    buy_quantity: int
    created_at: datetime
    updated_at: datetime
    sold_quantity: int = 0
    sell_events: list[SellEvent] = field(default_factory=list)
    notes: str = ""
    trade_id: str | None = None
    revision: str | None = None

    @property
    def is_open(self) -> bool:
        """True while part of the position is still held."""
        return self.sold_quantity < self.buy_quantity

    @property
    def remaining_quantity(self) -> int:
        """Contracts still held."""
        return self.buy_quantity - self.sold_quantity

    @property
    def identity_key(self) -> IdentityKey:
        return make_identity_key(self.user_id, self.stock, self.contract, self.expiration)

    def get_display_string(self) -> str:
        """Get formatted string for display."""
        return (
            f"{self.stock} {self.contract} (Exp. {self.expiration.strftime('%m/%d/%Y')}) "
            f"{self.remaining_quantity}/{self.buy_quantity} @ ${self.buy_price:.2f}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "trade_id": self.trade_id,
            "revision": self.revision,
            "user_id": self.user_id,
            "stock": self.stock,
            "contract": self.contract,
            "expiration": self.expiration.isoformat(),
            "buy_price": self.buy_price,
            "buy_quantity": self.buy_quantity,
            "sold_quantity": self.sold_quantity,
            "sell_events": [e.to_dict() for e in self.sell_events],
            "notes": self.notes,
            "is_open": self.is_open,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
