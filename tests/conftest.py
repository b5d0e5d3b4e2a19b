# === MODULE PURPOSE ===
# Pytest configuration and shared fixtures for tests.

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def notifier():
    """Chat bot stand-in whose deliveries always succeed."""
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=True)
    bot.send_trade_alert = AsyncMock(return_value=True)
    return bot
