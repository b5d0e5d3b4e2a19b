# === MODULE PURPOSE ===
# FastAPI application for the trade journal command surface.

# === DEPENDENCIES ===
# - trade_service: Buy/sell/list/delete workflows
# - daily_summary: End-of-day report
# - scheduler: Started/stopped with the app when provided

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI

from src.web.routes import create_router

if TYPE_CHECKING:
    from src.common.scheduler import DailyScheduler
    from src.trading.daily_summary import DailySummaryJob
    from src.trading.trade_service import TradeService

logger = logging.getLogger(__name__)


def create_app(
    trade_service: TradeService,
    summary_job: DailySummaryJob | None = None,
    scheduler: DailyScheduler | None = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        trade_service: Service handling trade commands (owns the store handle).
        summary_job: Daily summary job for /api/summary/daily.
        scheduler: Daily scheduler, started with the app and stopped on shutdown.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Option Trade Journal",
        description="Record option trades and report daily performance",
        version="1.0.0",
    )

    # Store references for routes
    app.state.trade_service = trade_service
    app.state.summary_job = summary_job
    app.state.scheduler = scheduler

    app.include_router(create_router())

    @app.on_event("startup")
    async def startup():
        logger.info("Web API started")
        if scheduler is not None:
            scheduler.start()

    @app.on_event("shutdown")
    async def shutdown():
        if scheduler is not None:
            await scheduler.stop()
        logger.info("Web API stopped")

    return app
