# === MODULE PURPOSE ===
# Exception taxonomy for the trade journal.
# Raised by the ledger, the input parser and the trade store; never swallowed
# inside those layers. Callers decide the user-facing message.


class TradingError(Exception):
    """Base class for all trade journal errors."""


class ValidationError(TradingError):
    """Bad numeric/date/text input, rejected before reaching the ledger."""


class InvalidDateFormat(ValidationError):
    """Expiration token could not be parsed."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(
            f"Invalid date format: {token!r}. Please use MM/DD/YYYY, MM/DD, or 0DTE"
        )


class OverSell(TradingError):
    """Sell quantity is not positive or exceeds the remaining open quantity."""

    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Cannot sell {requested} contracts, remaining quantity is {remaining}"
        )


class InvalidMergeState(TradingError):
    """Attempted to merge a buy into a closed position."""


class NotFound(TradingError):
    """Referenced trade record does not exist."""

    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(f"Trade not found: {trade_id}")


class Conflict(TradingError):
    """Write carried a stale revision token; re-fetch and retry."""

    def __init__(self, trade_id: str, revision: str | None):
        self.trade_id = trade_id
        self.revision = revision
        super().__init__(f"Revision conflict on trade {trade_id} (revision {revision})")
