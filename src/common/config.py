# === MODULE PURPOSE ===
# Configuration management for the trade journal.
# Loads YAML configuration files and provides typed access to settings.

# === KEY CONCEPTS ===
# - YAML-based: Human-readable configuration format
# - Dotted keys: config.get("summary.hour") walks nested mappings
# - Secrets separation: API keys stored in secrets.yaml or environment
# - Environment overrides for container deployment

import logging
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import yaml

logger = logging.getLogger(__name__)

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
SECRETS_PATH = PROJECT_ROOT / "config" / "secrets.yaml"

DEFAULT_TIMEZONE_NAME = "America/New_York"


class Config:
    """
    Configuration loader and accessor.

    Usage:
        config = Config.load("config/main-config.yaml")

        level = config.get_str("logging.level", default="INFO")
        hour = config.get_int("summary.hour", default=16)
    """

    def __init__(self, data: dict[str, Any]):
        self._data = data

    @classmethod
    def load(cls, config_path: str | Path) -> "Config":
        """
        Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {path}")
        return cls(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from a dictionary."""
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated key."""
        value: Any = self._data

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key, default)
        return str(value) if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on")
        return bool(value) if value is not None else default

    def get_list(self, key: str, default: list | None = None) -> list:
        value = self.get(key, default)
        if isinstance(value, list):
            return value
        return default if default is not None else []

    def get_dict(self, key: str, default: dict | None = None) -> dict:
        value = self.get(key, default)
        if isinstance(value, dict):
            return value
        return default if default is not None else {}

    def __repr__(self) -> str:
        return f"Config({list(self._data.keys())})"


def load_config(config_path: str | Path) -> Config:
    """Load configuration from a YAML file (wraps Config.load())."""
    return Config.load(config_path)


# === SECRETS MANAGEMENT ===

_secrets_cache: Config | None = None


def load_secrets() -> Config:
    """
    Load secrets from config/secrets.yaml.

    Raises:
        FileNotFoundError: If secrets.yaml doesn't exist
    """
    global _secrets_cache
    if _secrets_cache is not None:
        return _secrets_cache

    if not SECRETS_PATH.exists():
        raise FileNotFoundError(
            f"Secrets file not found: {SECRETS_PATH}\n"
            "Please copy config/secrets.yaml.example to config/secrets.yaml "
            "and fill in your credentials."
        )

    _secrets_cache = Config.load(SECRETS_PATH)
    logger.info("Loaded secrets configuration")
    return _secrets_cache


# === TYPED SECTIONS ===


def get_feishu_config() -> dict[str, str]:
    """
    Get chat relay bot configuration from environment variables.

    Environment variables:
        FEISHU_BOT_URL: Bot relay service URL
        FEISHU_APP_ID: App ID (required for sending)
        FEISHU_APP_SECRET: App secret (required for sending)
        FEISHU_CHAT_ID: Target chat/channel ID for trade alerts (required for sending)
    """
    return {
        "bot_url": os.getenv("FEISHU_BOT_URL", "http://localhost:8080"),
        "app_id": os.getenv("FEISHU_APP_ID", ""),
        "app_secret": os.getenv("FEISHU_APP_SECRET", ""),
        "chat_id": os.getenv("FEISHU_CHAT_ID", ""),
    }


def get_journal_timezone(config: Config | None = None) -> ZoneInfo:
    """Timezone that defines trading-day boundaries (journal.timezone)."""
    name = DEFAULT_TIMEZONE_NAME
    if config is not None:
        name = config.get_str("journal.timezone", DEFAULT_TIMEZONE_NAME)
    return ZoneInfo(name)


def get_summary_config(config: Config) -> dict[str, Any]:
    """
    Daily summary settings.

    Keys:
        summary.hour / summary.minute: Wall-clock time in journal timezone (default 16:00)
        summary.admin_user_ids: Users included by default
        summary.all_users: Include every user known to the trade store

    ADMIN_USER_ID in the environment is appended to admin_user_ids.
    """
    admin_ids = [str(uid) for uid in config.get_list("summary.admin_user_ids") if uid]
    env_admin = os.getenv("ADMIN_USER_ID", "")
    if env_admin and env_admin not in admin_ids:
        admin_ids.append(env_admin)

    return {
        "hour": config.get_int("summary.hour", 16),
        "minute": config.get_int("summary.minute", 0),
        "admin_user_ids": admin_ids,
        "all_users": config.get_bool("summary.all_users", False),
    }


def get_web_config(config: Config) -> dict[str, Any]:
    """
    Command surface (HTTP) settings.

    Environment variables WEB_HOST / WEB_PORT override the file values.
    """
    return {
        "host": os.getenv("WEB_HOST", config.get_str("web.host", "0.0.0.0")),
        "port": int(os.getenv("WEB_PORT", str(config.get_int("web.port", 8000)))),
    }
