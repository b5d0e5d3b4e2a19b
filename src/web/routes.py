# === MODULE PURPOSE ===
# API routes for the trade journal command surface.

# === ENDPOINTS ===
# POST   /api/trades/buy          - Record a buy (new position or averaged in)
# POST   /api/trades/{id}/sell    - Record a sell against a position
# GET    /api/trades/open         - List the caller's open positions
# GET    /api/trades              - List all of the caller's trades
# DELETE /api/trades/{id}         - Delete one trade
# DELETE /api/trades              - Delete all of the caller's trades
# GET    /api/summary/daily       - End-of-day summary (optionally posted to chat)
# GET    /api/status              - Health check
#
# The caller is identified by the X-User-Id header.
#
# === ERROR MAPPING ===
# ValidationError -> 400, NotFound -> 404, OverSell / InvalidMergeState -> 422,
# Conflict -> 409 (re-fetch and retry)

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel

from src.trading.errors import (
    Conflict,
    InvalidMergeState,
    NotFound,
    OverSell,
    TradingError,
    ValidationError,
)
from src.trading.formatter import format_daily_summary, format_open_positions
from src.trading.input_parser import parse_buy_request, parse_sell_request

if TYPE_CHECKING:
    from src.common.scheduler import DailyScheduler
    from src.trading.daily_summary import DailySummaryJob
    from src.trading.trade_service import TradeService

logger = logging.getLogger(__name__)


class BuyBody(BaseModel):
    """Request body for recording a buy."""

    stock: str
    contract_expiration: str  # e.g. "CALL $150 05/17", "150C 0dte"
    quantity: int | str
    price: float | str
    notes: str | None = None


class SellBody(BaseModel):
    """Request body for recording a sell."""

    price: float | str
    quantity: int | str
    notes: str | None = None


def http_error(error: TradingError) -> HTTPException:
    """Map a trading error to the HTTP status a client should act on."""
    if isinstance(error, ValidationError):
        status_code = 400
    elif isinstance(error, NotFound):
        status_code = 404
    elif isinstance(error, Conflict):
        status_code = 409
    elif isinstance(error, (OverSell, InvalidMergeState)):
        status_code = 422
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(error))


def create_router() -> APIRouter:
    """Create API router with all endpoints."""
    router = APIRouter()

    def get_service(request: Request) -> TradeService:
        """Get trade service from app state."""
        return request.app.state.trade_service

    def get_summary_job(request: Request) -> DailySummaryJob | None:
        """Get daily summary job from app state."""
        return getattr(request.app.state, "summary_job", None)

    def get_scheduler(request: Request) -> DailyScheduler | None:
        """Get scheduler from app state."""
        return getattr(request.app.state, "scheduler", None)

    # ==================== Trade Commands ====================

    @router.post("/api/trades/buy")
    async def api_buy(
        request: Request,
        body: BuyBody,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """Record a buy."""
        service = get_service(request)
        try:
            buy = parse_buy_request(
                user_id,
                body.stock,
                body.contract_expiration,
                body.quantity,
                body.price,
                body.notes,
                today=datetime.now(service.tz).date(),
            )
            result = await service.record_buy(buy)
        except TradingError as e:
            logger.warning(f"Buy rejected for {user_id}: {e}")
            raise http_error(e) from e

        return {
            "trade": result.record.to_dict(),
            "merged": result.merged,
            "stats": result.stats.to_dict(),
            "message": result.message,
        }

    @router.post("/api/trades/{trade_id}/sell")
    async def api_sell(
        request: Request,
        trade_id: str,
        body: SellBody,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """Record a sell against one of the caller's positions."""
        service = get_service(request)
        try:
            sell = parse_sell_request(user_id, trade_id, body.price, body.quantity, body.notes)
            result = await service.record_sell(sell)
        except TradingError as e:
            logger.warning(f"Sell rejected for {user_id} on {trade_id}: {e}")
            raise http_error(e) from e

        return {
            "trade": result.record.to_dict(),
            "realized_pl": result.realized_pl,
            "pl_percent": result.pl_percent,
            "closed": result.closed,
            "analysis": result.analysis,
            "message": result.message,
        }

    @router.get("/api/trades/open")
    async def api_open_trades(
        request: Request,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """List the caller's open positions."""
        trades = await get_service(request).list_open_positions(user_id)
        return {
            "trades": [t.to_dict() for t in trades],
            "count": len(trades),
            "message": format_open_positions(trades),
        }

    @router.get("/api/trades")
    async def api_trades(
        request: Request,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """List all of the caller's trades, open and closed."""
        trades = await get_service(request).list_trades(user_id)
        return {
            "trades": [t.to_dict() for t in trades],
            "count": len(trades),
        }

    @router.delete("/api/trades/{trade_id}")
    async def api_delete_trade(
        request: Request,
        trade_id: str,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """Delete one of the caller's trades."""
        try:
            trade = await get_service(request).delete_trade(user_id, trade_id)
        except TradingError as e:
            raise http_error(e) from e

        return {
            "success": True,
            "message": f"Deleted {trade.get_display_string()}",
        }

    @router.delete("/api/trades")
    async def api_delete_all_trades(
        request: Request,
        user_id: str = Header(..., alias="X-User-Id"),
    ) -> dict:
        """Delete every trade of the caller."""
        summary = await get_service(request).delete_all_trades(user_id)
        return {
            "deleted": summary.deleted,
            "failed": summary.failed,
        }

    # ==================== Summary ====================

    @router.get("/api/summary/daily")
    async def api_daily_summary(
        request: Request,
        day: date | None = None,
        post: bool = False,
    ) -> dict:
        """
        End-of-day summary for the configured users.

        Query:
            day: Trading day (YYYY-MM-DD), default today in the journal timezone.
            post: Also send the rendered summary to the chat channel.
        """
        job = get_summary_job(request)
        if job is None:
            raise HTTPException(status_code=503, detail="Daily summary not available")

        if post:
            message = await job.run(day)
            if message is None:
                raise HTTPException(status_code=404, detail="No users configured for summary")
            return {"posted": True, "message": message}

        summary = await job.build(day)
        if summary is None:
            raise HTTPException(status_code=404, detail="No users configured for summary")

        return {
            "summary": summary.to_dict(),
            "message": format_daily_summary(summary),
        }

    # ==================== Status ====================

    @router.get("/api/status")
    async def api_status(request: Request) -> dict:
        """Health check endpoint."""
        service = get_service(request)
        scheduler = get_scheduler(request)
        return {
            "status": "ok",
            "store": type(service.repository).__name__,
            "timezone": str(service.tz),
            "scheduler_running": scheduler.is_running if scheduler else False,
        }

    return router
