# Tests for LLM Service
# Tests OpenAI-compatible trade commentary integration

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.common.llm_service import (
    ANALYSIS_UNAVAILABLE,
    AnalysisResult,
    LLMConfig,
    LLMService,
    build_trade_prompt,
    create_llm_service_from_config,
)


class TestAnalysisResult:
    """Tests for AnalysisResult dataclass."""

    def test_default_values(self):
        """Test default values are set correctly."""
        result = AnalysisResult()
        assert result.text == ""
        assert result.success is True
        assert result.error == ""

    def test_display_text_success(self):
        result = AnalysisResult(text="Solid exit into strength.")
        assert result.display_text() == "Solid exit into strength."

    def test_display_text_failure_uses_placeholder(self):
        result = AnalysisResult(success=False, error="timeout")
        assert result.display_text() == ANALYSIS_UNAVAILABLE

    def test_display_text_empty_uses_placeholder(self):
        """Test an empty completion is treated as unavailable."""
        assert AnalysisResult(text="").display_text() == ANALYSIS_UNAVAILABLE

    def test_to_dict(self):
        result = AnalysisResult(text="ok", raw_response=" ok ", success=True)
        assert result.to_dict() == {
            "text": "ok",
            "raw_response": " ok ",
            "success": True,
            "error": "",
        }


class TestBuildTradePrompt:
    """Tests for the trade prompt."""

    def test_prompt_contains_trade_fields(self):
        prompt = build_trade_prompt("AAPL", "CALL $150", 3.6, 5.0, 2, 280.0, 38.89)

        assert "Stock: AAPL" in prompt
        assert "Contract: CALL $150" in prompt
        assert "Buy Price: $3.60" in prompt
        assert "Sell Price: $5.00" in prompt
        assert "Quantity: 2" in prompt
        assert "Profit/Loss: +$280.00 (38.89%)" in prompt

    def test_prompt_loss_sign(self):
        prompt = build_trade_prompt("AAPL", "CALL $150", 3.6, 2.0, 3, -480.0, -44.44)
        assert "Profit/Loss: -$480.00 (-44.44%)" in prompt


class TestLLMService:
    """Tests for LLMService class."""

    @pytest.fixture
    def config(self):
        """Create test configuration."""
        return LLMConfig(
            api_key="test-api-key",
            model="test-model",
            max_retries=2,
            retry_delay=0.0,
        )

    @pytest.fixture
    def service(self, config):
        """Create LLM service instance."""
        return LLMService(config)

    def test_init(self, service, config):
        """Test service initialization."""
        assert service._config == config
        assert service._client is None
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_start_stop(self, service):
        """Test service start and stop."""
        await service.start()
        assert service.is_running is True
        assert service._client is not None

        await service.stop()
        assert service.is_running is False
        assert service._client is None

    @pytest.mark.asyncio
    async def test_analyze_trade_not_running(self, service):
        """Test analyze_trade raises error when service not running."""
        with pytest.raises(RuntimeError, match="not running"):
            await service.analyze_trade("prompt")

    @pytest.mark.asyncio
    async def test_analyze_trade_success(self, service):
        """Test successful trade commentary."""
        await service.start()

        with patch.object(service._client, "post") as mock_post:
            mock_response_obj = MagicMock()
            mock_response_obj.json.return_value = {
                "choices": [{"message": {"content": "  Clean scalp on momentum.  "}}]
            }
            mock_response_obj.raise_for_status = MagicMock()
            mock_post.return_value = mock_response_obj

            result = await service.analyze_trade("prompt")

            assert result.success is True
            assert result.text == "Clean scalp on momentum."
            payload = mock_post.call_args[1]["json"]
            assert payload["model"] == "test-model"
            assert payload["messages"][0]["content"] == "prompt"
            headers = mock_post.call_args[1]["headers"]
            assert headers["Authorization"] == "Bearer test-api-key"

        await service.stop()

    @pytest.mark.asyncio
    async def test_analyze_trade_api_error(self, service):
        """Test API errors are retried and reported, not raised."""
        await service.start()

        error_response = MagicMock()
        error_response.status_code = 500
        error_response.text = "Internal Server Error"

        with patch.object(service._client, "post") as mock_post:
            mock_response_obj = MagicMock()
            mock_response_obj.raise_for_status.side_effect = httpx.HTTPStatusError(
                "Server error", request=MagicMock(), response=error_response
            )
            mock_post.return_value = mock_response_obj

            result = await service.analyze_trade("prompt")

            assert result.success is False
            assert "500" in result.error
            assert mock_post.call_count == 2
            assert result.display_text() == ANALYSIS_UNAVAILABLE

        await service.stop()

    @pytest.mark.asyncio
    async def test_analyze_trade_malformed_response(self, service):
        """Test a response without choices is a parse failure."""
        await service.start()

        with (
            patch.object(service._client, "post") as mock_post,
            patch("asyncio.sleep", new_callable=AsyncMock),
        ):
            mock_response_obj = MagicMock()
            mock_response_obj.json.return_value = {"error": "nope"}
            mock_response_obj.raise_for_status = MagicMock()
            mock_post.return_value = mock_response_obj

            result = await service.analyze_trade("prompt")

            assert result.success is False
            assert "parse error" in result.error

        await service.stop()


class TestCreateLLMServiceFromConfig:
    """Tests for create_llm_service_from_config."""

    def test_env_key(self):
        with (
            patch.dict("os.environ", {"OPENAI_API_KEY": "env-key"}),
            patch("src.common.config.load_secrets", side_effect=FileNotFoundError),
        ):
            service = create_llm_service_from_config()

        assert service._config.api_key == "env-key"
        assert service._config.model == "gpt-3.5-turbo"

    def test_missing_key_raises(self):
        with (
            patch.dict("os.environ", {}, clear=True),
            patch("src.common.config.load_secrets", side_effect=FileNotFoundError),
        ):
            with pytest.raises(ValueError, match="API key"):
                create_llm_service_from_config()
