# === MODULE PURPOSE ===
# Chat relay bot client for posting trade alerts and daily summaries.
# Also used for error alerts and startup/shutdown notifications.

# === DEPENDENCIES ===
# - httpx: Async HTTP client
# - asyncio: Async sleep for retry delays
# - config: get_feishu_config for environment variable management

# === KEY CONCEPTS ===
# - External Bot Service: Messages sent via intermediary relay service
# - Delivery budgets: trade alerts sit on the command request path and get a
#   single short attempt; summaries and lifecycle notices run off the request
#   path and retry with exponential backoff
# - Graceful Degradation: Skip if not configured, never raise on delivery failure

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx

from src.common.config import get_feishu_config

logger = logging.getLogger(__name__)

# Journal timezone for timestamps
MARKET_TZ = ZoneInfo("America/New_York")

MAX_BACKOFF_SECONDS = 60


@dataclass(frozen=True)
class DeliveryBudget:
    """How hard to try for one message: extra attempts and per-attempt timeout."""

    retries: int
    timeout: float


# Background delivery: 1s, 2s, 4s, 8s, 16s between attempts
BACKGROUND_BUDGET = DeliveryBudget(retries=5, timeout=30.0)
# Request-path delivery: one attempt, bounded wait
ALERT_BUDGET = DeliveryBudget(retries=0, timeout=5.0)


class FeishuBot:
    """
    Chat relay client for sending messages to the trade channel.

    The bot posts through an intermediary relay service that handles chat
    platform authentication, so no platform SDK is embedded here.

    API Protocol:
        POST /api/send
        Payload: {app_id, app_secret, chat_id, message}
        Response: {code: 0, msg: "success"} or {code: non-zero, msg: "error"}

    Usage:
        bot = FeishuBot()
        if bot.is_configured():
            await bot.send_trade_alert(format_sell_alert(...))   # one quick try
            await bot.send_message(format_daily_summary(...))    # retried
    """

    def __init__(
        self,
        bot_url: str | None = None,
        app_id: str | None = None,
        app_secret: str | None = None,
        chat_id: str | None = None,
        max_retries: int = BACKGROUND_BUDGET.retries,
        alert_budget: DeliveryBudget = ALERT_BUDGET,
    ):
        """
        Args:
            bot_url: Bot relay service URL (default from FEISHU_BOT_URL env)
            app_id: App ID (default from FEISHU_APP_ID env)
            app_secret: App secret (default from FEISHU_APP_SECRET env)
            chat_id: Target chat ID (default from FEISHU_CHAT_ID env)
            max_retries: Default retry count for send_message
            alert_budget: Budget for send_trade_alert
        """
        config = get_feishu_config()
        self.bot_url = bot_url or config["bot_url"]
        self.app_id = app_id if app_id is not None else config["app_id"]
        self.app_secret = app_secret if app_secret is not None else config["app_secret"]
        self.chat_id = chat_id if chat_id is not None else config["chat_id"]
        self.max_retries = max_retries
        self.alert_budget = alert_budget

    def is_configured(self) -> bool:
        """True if app_id, app_secret, and chat_id are all set."""
        return bool(self.app_id and self.app_secret and self.chat_id)

    async def _post(self, message: str, timeout: float) -> None:
        """
        One delivery attempt.

        Raises:
            httpx.HTTPError: Transport failure or non-2xx status.
            RuntimeError: Relay answered with a non-zero code.
        """
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                f"{self.bot_url}/api/send",
                json={
                    "app_id": self.app_id,
                    "app_secret": self.app_secret,
                    "chat_id": self.chat_id,
                    "message": message,
                },
            )
            response.raise_for_status()
            data = response.json()

        if data.get("code") != 0:
            raise RuntimeError(f"Relay API error: {data}")

    async def _deliver(self, message: str, budget: DeliveryBudget) -> bool:
        if not self.is_configured():
            logger.warning("Chat bot not configured, skipping message")
            return False

        attempts = budget.retries + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            if attempt > 0:
                delay = min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
                logger.debug(f"Retrying in {delay} seconds...")
                await asyncio.sleep(delay)

            try:
                await self._post(message, budget.timeout)
            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning(
                    f"Relay HTTP error (attempt {attempt + 1}/{attempts}): "
                    f"{e.response.status_code} - {e.response.text}"
                )
                continue
            except Exception as e:
                last_error = e
                logger.warning(f"Failed to send chat message (attempt {attempt + 1}/{attempts}): {e}")
                continue

            if attempt > 0:
                logger.info(f"Message sent after {attempt} retries: {message[:50]}...")
            else:
                logger.debug(f"Message sent: {message[:50]}...")
            return True

        logger.error(f"Failed to send chat message after {attempts} attempts. Last error: {last_error}")
        return False

    async def send_message(self, message: str, max_retries: int | None = None) -> bool:
        """
        Send a text message with retries and exponential backoff (1s, 2s, 4s, ... capped at 60s).

        For callers off the request path (daily summary, lifecycle notices).

        Returns:
            True if sent successfully, False otherwise
        """
        retries = self.max_retries if max_retries is None else max_retries
        return await self._deliver(
            message, DeliveryBudget(retries=retries, timeout=BACKGROUND_BUDGET.timeout)
        )

    async def send_trade_alert(self, message: str) -> bool:
        """
        Post a buy/sell alert within the alert budget.

        The command that produced the alert has already been persisted, so a
        failed post is logged and reported as False, never retried at length.
        """
        return await self._deliver(message, self.alert_budget)

    async def send_alert(self, title: str, content: str) -> bool:
        """Send an error alert message."""
        return await self.send_message(f"🚨 {title}\n\n{content}")

    async def send_startup_notification(self, version: str | None = None) -> bool:
        """Send system startup notification."""
        now = datetime.now(MARKET_TZ)
        lines = [
            "✅ Trade journal bot started",
            "",
            f"⏰ Started: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        ]
        if version and version != "unknown":
            lines.append(f"📦 Version: {version[:8]}")
        return await self.send_message("\n".join(lines))

    async def send_shutdown_notification(self) -> bool:
        """Send system shutdown notification."""
        now = datetime.now(MARKET_TZ)
        message = f"⚠️ Trade journal bot stopped\n\n⏰ Stopped: {now.strftime('%Y-%m-%d %H:%M:%S %Z')}"
        return await self.send_message(message)
