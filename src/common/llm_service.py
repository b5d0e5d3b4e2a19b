# === MODULE PURPOSE ===
# LLM service for one-sentence trade commentary.
# Async client for an OpenAI-compatible chat completions API.

# === DEPENDENCIES ===
# - httpx: Async HTTP client for API calls
# - config: For API credentials from secrets.yaml / environment

# === KEY CONCEPTS ===
# - Called after a sell is validated, before it is persisted
# - Never raises on API trouble: returns AnalysisResult(success=False)
# - Callers substitute a placeholder text for failed analyses

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

ANALYSIS_UNAVAILABLE = "AI analysis unavailable."


@dataclass
class LLMConfig:
    """Configuration for LLM service."""

    api_key: str
    base_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 100
    temperature: float = 0.7
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class AnalysisResult:
    """
    Result of a trade analysis request.

    Fields:
        text: Commentary returned by the model
        raw_response: Original response content
        success: Whether analysis completed successfully
        error: Error message if analysis failed
    """

    text: str = ""
    raw_response: str = ""
    success: bool = True
    error: str = ""

    def display_text(self, placeholder: str = ANALYSIS_UNAVAILABLE) -> str:
        """Commentary, or the placeholder when the analysis failed or came back empty."""
        if self.success and self.text:
            return self.text
        return placeholder

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "raw_response": self.raw_response,
            "success": self.success,
            "error": self.error,
        }


def build_trade_prompt(
    stock: str,
    contract: str,
    buy_price: float,
    sell_price: float,
    quantity: int,
    profit_loss: float,
    profit_loss_percent: float,
) -> str:
    """Plain-text description of a completed sell for the model."""
    sign = "+" if profit_loss >= 0 else "-"
    return (
        "Analyze this stock option trade:\n"
        f"Stock: {stock}\n"
        f"Contract: {contract}\n"
        f"Buy Price: ${buy_price:.2f}\n"
        f"Sell Price: ${sell_price:.2f}\n"
        f"Quantity: {quantity}\n"
        f"Profit/Loss: {sign}${abs(profit_loss):.2f} ({profit_loss_percent:.2f}%)\n\n"
        "Provide a brief, one-sentence analysis of this trade focusing on the "
        "performance and any notable aspects."
    )


class LLMService:
    """
    Async LLM client for trade commentary.

    Usage:
        llm = LLMService(LLMConfig(api_key="sk-xxx"))
        await llm.start()

        result = await llm.analyze_trade(prompt)
        text = result.display_text()

        await llm.stop()
    """

    def __init__(self, config: LLMConfig):
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._is_running

    async def start(self) -> None:
        """Initialize the HTTP client."""
        if self._is_running:
            return

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        self._is_running = True
        logger.info(f"LLM service started with model: {self._config.model}")

    async def stop(self) -> None:
        """Close the HTTP client."""
        if not self._is_running:
            return

        if self._client:
            await self._client.aclose()
            self._client = None

        self._is_running = False
        logger.info("LLM service stopped")

    async def analyze_trade(self, prompt: str) -> AnalysisResult:
        """
        Ask the model for a one-sentence commentary.

        Args:
            prompt: Trade description, see build_trade_prompt().

        Returns:
            AnalysisResult; success=False after all retries failed.

        Raises:
            RuntimeError: If service is not running.
        """
        if not self._is_running or not self._client:
            raise RuntimeError("LLM service is not running. Call start() first.")

        payload = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

        last_error = None
        retries = self._config.max_retries
        for attempt in range(retries):
            try:
                response = await self._client.post(
                    self._config.base_url,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._config.api_key}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()

                data = response.json()
                content = data["choices"][0]["message"]["content"] or ""
                return AnalysisResult(text=content.strip(), raw_response=content)

            except httpx.HTTPStatusError as e:
                last_error = f"HTTP error {e.response.status_code}: {e.response.text}"
                logger.warning(f"LLM API error (attempt {attempt + 1}/{retries}): {last_error}")
            except httpx.RequestError as e:
                last_error = f"Request error: {str(e)}"
                logger.warning(f"LLM request error ({attempt + 1}/{retries}): {last_error}")
            except (KeyError, IndexError, TypeError, ValueError) as e:
                last_error = f"Response parse error: {str(e)}"
                logger.warning(f"LLM parse error ({attempt + 1}/{retries}): {last_error}")

            if attempt < retries - 1:
                await asyncio.sleep(self._config.retry_delay * (attempt + 1))

        return AnalysisResult(success=False, error=last_error or "Unknown error")


def create_llm_service_from_config() -> LLMService:
    """
    Create LLM service from environment or config/secrets.yaml.

    OPENAI_API_KEY takes priority over secrets.yaml (openai.api_key).

    Raises:
        ValueError: If no API key is configured.
    """
    from src.common.config import load_secrets

    api_key = os.environ.get("OPENAI_API_KEY", "")
    openai_config: dict[str, Any] = {}

    try:
        openai_config = load_secrets().get_dict("openai", {})
    except FileNotFoundError:
        logger.debug("secrets.yaml not found, using environment only")

    api_key = api_key or openai_config.get("api_key", "")
    if not api_key:
        raise ValueError("OpenAI API key not configured (OPENAI_API_KEY or secrets.yaml)")

    config = LLMConfig(
        api_key=api_key,
        base_url=openai_config.get("base_url", "https://api.openai.com/v1/chat/completions"),
        model=openai_config.get("model", "gpt-3.5-turbo"),
        max_tokens=openai_config.get("max_tokens", 100),
        temperature=openai_config.get("temperature", 0.7),
    )

    return LLMService(config)
