#!/usr/bin/env python3
# === MODULE PURPOSE ===
# Main entry point for the Option Trade Journal.
# Wires the trade store, LLM analyst, chat bot, daily scheduler and HTTP API.

# === USAGE ===
# uv run python scripts/main.py
# uv run python scripts/main.py --config config/main-config.yaml
# uv run python scripts/main.py --memory   # no PostgreSQL, trades kept in memory

# === KEY CONCEPTS ===
# - JournalApp: Owns every long-lived handle (store pool, LLM client, scheduler)
# - Store handle is created here and passed explicitly to the trade service
# - LLM analysis is optional: missing API key only disables commentary
# - Daily summary runs on DailyScheduler at summary.hour:summary.minute

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import uvicorn

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.common.config import (
    Config,
    get_journal_timezone,
    get_summary_config,
    get_web_config,
)
from src.common.feishu_bot import FeishuBot
from src.common.llm_service import LLMService, create_llm_service_from_config
from src.common.scheduler import DailyScheduler
from src.trading.daily_summary import DailySummaryJob
from src.trading.repository import (
    InMemoryTradeRepository,
    TradeStore,
    create_trade_repository_from_config,
)
from src.trading.trade_service import TradeService
from src.web.app import create_app

logger = logging.getLogger(__name__)

DATABASE_CONFIG = "config/database-config.yaml"


def setup_logging(config: Config) -> None:
    """Configure logging based on config."""
    level = config.get_str("logging.level", "INFO")
    format_str = config.get_str(
        "logging.format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Create logs directory if needed
    log_file = config.get_str("logging.file")
    if log_file:
        log_path = project_root / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(log_path, encoding="utf-8"),
            ],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
        )


class JournalApp:
    """
    Process-level owner of the trade journal components.

    Lifecycle:
        1. initialize(): connect store, start LLM client, build service/job/scheduler
        2. run(): serve the HTTP API until shutdown is requested
        3. shutdown(): stop server, scheduler, LLM client, close store
    """

    def __init__(self, config: Config, use_memory_store: bool = False):
        self.config = config
        self.use_memory_store = use_memory_store
        self.tz = get_journal_timezone(config)
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.repository: TradeStore | None = None
        self.llm_service: LLMService | None = None
        self.feishu_bot: FeishuBot = FeishuBot()
        self.scheduler: DailyScheduler | None = None
        self.trade_service: TradeService | None = None
        self.summary_job: DailySummaryJob | None = None

        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None
        self._startup_notice: asyncio.Task | None = None

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing trade journal...")

        # 1. Trade store
        self.repository = self._create_repository()
        await self.repository.connect()

        # 2. LLM analyst (optional)
        try:
            self.llm_service = create_llm_service_from_config()
            await self.llm_service.start()
        except ValueError as e:
            logger.warning(f"AI analysis disabled: {e}")
            self.llm_service = None

        # 3. Trade service
        self.trade_service = TradeService(
            self.repository,
            analyst=self.llm_service,
            notifier=self.feishu_bot,
            tz=self.tz,
        )

        # 4. Daily summary
        summary_config = get_summary_config(self.config)
        self.summary_job = DailySummaryJob(
            self.trade_service,
            notifier=self.feishu_bot,
            admin_user_ids=summary_config["admin_user_ids"],
            all_users=summary_config["all_users"],
        )
        self.scheduler = DailyScheduler(tz=self.tz)
        self.scheduler.schedule_daily(
            "daily_summary",
            summary_config["hour"],
            summary_config["minute"],
            self.summary_job.run,
        )

        logger.info("Trade journal initialization complete")

    def _create_repository(self) -> TradeStore:
        if self.use_memory_store:
            logger.warning("Using in-memory trade store, trades are lost on exit")
            return InMemoryTradeRepository()

        if not (project_root / DATABASE_CONFIG).exists():
            logger.warning(f"{DATABASE_CONFIG} not found, using in-memory trade store")
            return InMemoryTradeRepository()

        return create_trade_repository_from_config(str(project_root / DATABASE_CONFIG))

    async def run(self) -> None:
        """Serve the HTTP API until shutdown is requested."""
        assert self.trade_service is not None
        self._running = True

        web_config = get_web_config(self.config)
        app = create_app(self.trade_service, self.summary_job, self.scheduler)
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=web_config["host"],
                port=web_config["port"],
                log_config=None,
            )
        )
        self._server_task = asyncio.create_task(self._server.serve(), name="web_server")
        logger.info(f"Web API listening on {web_config['host']}:{web_config['port']}")

        self._send_startup_notification()

        # Wait for shutdown signal or server exit
        waiter = asyncio.create_task(self._shutdown_event.wait())
        done, _ = await asyncio.wait(
            {waiter, self._server_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        waiter.cancel()

        if self._server_task in done and self._server_task.exception():
            raise self._server_task.exception()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        if not self._running and self.repository is None:
            return

        logger.info("Initiating shutdown...")
        self._running = False

        # Stop web server (its shutdown hook also stops the scheduler)
        if self._server is not None:
            self._server.should_exit = True
        if self._server_task is not None:
            await asyncio.gather(self._server_task, return_exceptions=True)
            self._server_task = None

        if self.scheduler is not None:
            await self.scheduler.stop()

        if self.llm_service is not None:
            await self.llm_service.stop()

        if self.repository is not None:
            await self.repository.close()
            self.repository = None

        await self._await_startup_notification()

        # Send shutdown notification
        if self.feishu_bot.is_configured():
            await self.feishu_bot.send_shutdown_notification()

        logger.info("Shutdown complete")

    def _send_startup_notification(self) -> None:
        """Post the startup notice in the background; shutdown() collects it."""
        if not self.feishu_bot.is_configured():
            return
        self._startup_notice = asyncio.create_task(
            self.feishu_bot.send_startup_notification(), name="startup_notice"
        )

    async def _await_startup_notification(self) -> None:
        if self._startup_notice is None:
            return
        task, self._startup_notice = self._startup_notice, None
        try:
            sent = await task
        except Exception as e:
            logger.error(f"Startup notification failed: {e}")
            return
        if not sent:
            logger.warning("Startup notification was not delivered")

    def request_shutdown(self) -> None:
        """Request application shutdown."""
        self._shutdown_event.set()


async def main(config_path: str, use_memory_store: bool = False) -> None:
    """Main entry point."""
    # Load configuration
    config = Config.load(config_path)
    setup_logging(config)

    logger.info("=" * 60)
    logger.info("Option Trade Journal")
    logger.info("=" * 60)

    app = JournalApp(config, use_memory_store=use_memory_store)

    # Setup signal handlers
    def signal_handler():
        logger.info("Shutdown signal received")
        app.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: signal_handler())

    try:
        await app.initialize()
        await app.run()

    except Exception as e:
        logger.error(f"System error: {e}", exc_info=True)
        if app.feishu_bot.is_configured():
            await app.feishu_bot.send_alert(
                "Trade Journal Error",
                f"The trade journal hit a fatal error:\n\n{type(e).__name__}: {e}",
            )
        raise
    finally:
        await app.shutdown()

    logger.info("System terminated")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Option Trade Journal")
    parser.add_argument(
        "--config",
        "-c",
        default="config/main-config.yaml",
        help="Path to main configuration file",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Keep trades in memory instead of PostgreSQL",
    )
    args = parser.parse_args()

    asyncio.run(main(args.config, use_memory_store=args.memory))
