"""
Tests for Calvin configuration.

Tests cover:
    - Defaults
    - config.yaml loading and environment precedence
    - Typed properties (working hours, timezone, limits)
    - save() never persisting secrets
"""

from __future__ import annotations

from datetime import time, timezone
from zoneinfo import ZoneInfo

import pytest
import yaml

from calvin import config as config_module
from calvin.config import CalvinConfig
from calvin.timewindow import InvalidTimezoneError


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """No ambient CALVIN_*/OPENAI_* variables, no .env, data dir in tmp_path."""
    for key in CalvinConfig.DEFAULTS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", lambda *a, **kw: False)
    monkeypatch.setenv("CALVIN_DATA_DIR", str(tmp_path))
    return tmp_path


class TestDefaults:
    def test_defaults(self):
        cfg = CalvinConfig(load=False)
        assert cfg.model == "gpt-4-turbo-preview"
        assert cfg.temperature == 0.7
        assert cfg.max_tokens == 1000
        assert cfg.timezone is timezone.utc
        assert cfg.working_hours.start == time(9, 0)
        assert cfg.working_hours.end == time(17, 0)
        assert cfg.history_window == 10
        assert cfg.upcoming_count == 5
        assert (cfg.chat_rate_limit, cfg.chat_rate_window) == (30, 60.0)
        assert (cfg.calendar_rate_limit, cfg.calendar_rate_window) == (5000, 900.0)
        assert cfg.api_port == 8000
        assert not cfg.has_api_key()

    def test_repr_hides_key(self):
        cfg = CalvinConfig(load=False)
        cfg.set("OPENAI_API_KEY", "sk-secret")
        assert "sk-secret" not in repr(cfg)
        assert "openai=yes" in repr(cfg)


class TestLoading:
    def test_env_overrides(self, isolated_env, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("CALVIN_API_PORT", "9001")
        monkeypatch.setenv("CALVIN_TIMEZONE", "America/New_York")
        cfg = CalvinConfig()
        assert cfg.openai_api_key == "sk-env"
        assert cfg.api_port == 9001
        assert cfg.timezone == ZoneInfo("America/New_York")

    def test_yaml_file(self, isolated_env):
        (isolated_env / "config.yaml").write_text(yaml.dump({
            "CALVIN_WORKING_HOURS_START": "08:00",
            "CALVIN_WORKING_HOURS_END": "16:30",
            "CALVIN_CHAT_RATE_LIMIT": 5,
        }))
        cfg = CalvinConfig()
        assert cfg.working_hours.minutes == 510
        assert cfg.chat_rate_limit == 5

    def test_env_beats_yaml(self, isolated_env, monkeypatch):
        (isolated_env / "config.yaml").write_text(yaml.dump({"CALVIN_MODEL": "from-yaml"}))
        monkeypatch.setenv("CALVIN_MODEL", "from-env")
        assert CalvinConfig().model == "from-env"

    def test_broken_yaml_is_ignored(self, isolated_env):
        (isolated_env / "config.yaml").write_text("CALVIN_MODEL: [unclosed")
        assert CalvinConfig().model == "gpt-4-turbo-preview"

    def test_invalid_timezone(self, isolated_env, monkeypatch):
        monkeypatch.setenv("CALVIN_TIMEZONE", "Nowhere/Special")
        with pytest.raises(InvalidTimezoneError):
            CalvinConfig().timezone


class TestSave:
    def test_save_excludes_secrets_and_defaults(self, isolated_env):
        cfg = CalvinConfig()
        cfg.set("OPENAI_API_KEY", "sk-secret")
        cfg.set("CALVIN_MODEL", "gpt-4o")
        cfg.save()
        saved = yaml.safe_load((isolated_env / "config.yaml").read_text())
        assert saved["CALVIN_MODEL"] == "gpt-4o"
        assert "OPENAI_API_KEY" not in saved
        assert "CALVIN_TEMPERATURE" not in saved

    def test_saved_values_reload(self, isolated_env):
        cfg = CalvinConfig()
        cfg.set("CALVIN_UPCOMING_COUNT", 8)
        cfg.save()
        assert CalvinConfig().upcoming_count == 8
