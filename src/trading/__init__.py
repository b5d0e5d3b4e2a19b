# === MODULE PURPOSE ===
# Option trade journal: position ledger, P/L aggregation and trade commands.

# === KEY CONCEPTS ===
# - TradeRecord: One position (buys averaged in, sells recorded as events)
# - position_ledger: Pure transitions (create / merge / sell)
# - performance: Pure day statistics and end-of-day summary
# - TradeService: Command workflows over a TradeStore
# - DailySummaryJob: Scheduled end-of-day report

# === PERSISTENCE ===
# PostgreSQL 'trading' schema, table option_trades, revision-checked writes.
# InMemoryTradeRepository for local runs without a database.

from src.trading.daily_summary import DailySummaryJob
from src.trading.errors import (
    Conflict,
    InvalidDateFormat,
    InvalidMergeState,
    NotFound,
    OverSell,
    TradingError,
    ValidationError,
)
from src.trading.input_parser import (
    BuyRequest,
    SellRequest,
    parse_buy_request,
    parse_sell_request,
)
from src.trading.models import SellEvent, TradeRecord
from src.trading.performance import (
    DailyProfitLoss,
    DailyStats,
    PeriodSummary,
    daily_profit_loss,
    daily_stats,
    period_summary,
)
from src.trading.repository import (
    InMemoryTradeRepository,
    TradeRepository,
    TradeStore,
    TradingRepositoryConfig,
    create_trade_repository_from_config,
)
from src.trading.trade_service import BuyResult, DeleteSummary, SellResult, TradeService

__all__ = [
    # Models
    "TradeRecord",
    "SellEvent",
    # Errors
    "TradingError",
    "ValidationError",
    "InvalidDateFormat",
    "OverSell",
    "InvalidMergeState",
    "NotFound",
    "Conflict",
    # Input
    "BuyRequest",
    "SellRequest",
    "parse_buy_request",
    "parse_sell_request",
    # Performance
    "DailyStats",
    "DailyProfitLoss",
    "PeriodSummary",
    "daily_stats",
    "daily_profit_loss",
    "period_summary",
    # Repository
    "TradeStore",
    "TradeRepository",
    "InMemoryTradeRepository",
    "TradingRepositoryConfig",
    "create_trade_repository_from_config",
    # Service
    "TradeService",
    "BuyResult",
    "SellResult",
    "DeleteSummary",
    "DailySummaryJob",
]
