# === MODULE PURPOSE ===
# Tests for configuration loading and typed config sections.

from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from src.common.config import (
    Config,
    get_journal_timezone,
    get_summary_config,
    get_web_config,
)


class TestConfig:
    """Tests for the Config accessor."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "main-config.yaml"
        path.write_text("summary:\n  hour: 17\n  all_users: true\n", encoding="utf-8")

        config = Config.load(path)

        assert config.get_int("summary.hour") == 17
        assert config.get_bool("summary.all_users") is True

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "missing.yaml")

    def test_dotted_defaults(self):
        config = Config.from_dict({"web": {"port": 9000}})

        assert config.get("web.port") == 9000
        assert config.get("web.host", "0.0.0.0") == "0.0.0.0"
        assert config.get("missing.deeply.nested", "x") == "x"
        assert config.get_list("summary.admin_user_ids") == []


class TestTypedSections:
    """Tests for journal/summary/web sections."""

    def test_journal_timezone_default(self):
        assert get_journal_timezone() == ZoneInfo("America/New_York")
        assert get_journal_timezone(Config.from_dict({})) == ZoneInfo("America/New_York")

    def test_journal_timezone_override(self):
        config = Config.from_dict({"journal": {"timezone": "UTC"}})
        assert get_journal_timezone(config) == ZoneInfo("UTC")

    def test_summary_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            summary = get_summary_config(Config.from_dict({}))

        assert summary == {
            "hour": 16,
            "minute": 0,
            "admin_user_ids": [],
            "all_users": False,
        }

    def test_summary_admin_from_env_appended_once(self):
        config = Config.from_dict({"summary": {"admin_user_ids": ["111", 222]}})

        with patch.dict("os.environ", {"ADMIN_USER_ID": "333"}, clear=True):
            assert get_summary_config(config)["admin_user_ids"] == ["111", "222", "333"]

        with patch.dict("os.environ", {"ADMIN_USER_ID": "111"}, clear=True):
            assert get_summary_config(config)["admin_user_ids"] == ["111", "222"]

    def test_web_env_override(self):
        config = Config.from_dict({"web": {"host": "127.0.0.1", "port": 8000}})

        with patch.dict("os.environ", {"WEB_PORT": "9100"}, clear=True):
            web = get_web_config(config)

        assert web == {"host": "127.0.0.1", "port": 9100}
