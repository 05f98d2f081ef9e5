"""
Calvin — Configuration

Settings for the assistant, the calendar engine and the HTTP server.

Config sources (priority: ENV > .env > config.yaml > defaults):
1. Environment variables
2. .env file in project root
3. ~/.calvin/config.yaml
4. Hardcoded defaults
"""

from __future__ import annotations

import logging
import os
from datetime import tzinfo
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from calvin.timewindow import WorkingHours, resolve_timezone

logger = logging.getLogger("calvin.config")

# ═══════════════════════════════════════════════════════════════════════════
# Paths
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_DATA_DIR = Path.home() / ".calvin"


# ═══════════════════════════════════════════════════════════════════════════
# Calvin Config
# ═══════════════════════════════════════════════════════════════════════════


class CalvinConfig:
    """Calvin configuration: model, calendar defaults, admission limits, server."""

    # All known config keys with their defaults
    DEFAULTS: dict[str, Any] = {
        # LLM
        "OPENAI_API_KEY": "",
        "CALVIN_MODEL": "gpt-4-turbo-preview",
        "CALVIN_TEMPERATURE": 0.7,
        "CALVIN_MAX_TOKENS": 1000,
        # Calendar
        "CALVIN_TIMEZONE": "UTC",
        "CALVIN_WORKING_HOURS_START": "09:00",
        "CALVIN_WORKING_HOURS_END": "17:00",
        "CALVIN_HISTORY_WINDOW": 10,
        "CALVIN_UPCOMING_COUNT": 5,
        # Admission
        "CALVIN_CHAT_RATE_LIMIT": 30,
        "CALVIN_CHAT_RATE_WINDOW": 60,
        "CALVIN_CALENDAR_RATE_LIMIT": 5000,
        "CALVIN_CALENDAR_RATE_WINDOW": 900,
        # API server
        "CALVIN_API_HOST": "127.0.0.1",
        "CALVIN_API_PORT": 8000,
        "CALVIN_LOG_LEVEL": "INFO",
        "CALVIN_DATA_DIR": str(DEFAULT_DATA_DIR),
    }

    # Keys that must never be written to config.yaml
    SECRET_KEYS: set[str] = {"OPENAI_API_KEY"}

    def __init__(self, load: bool = True) -> None:
        self._data: dict[str, Any] = dict(self.DEFAULTS)
        if load:
            self._load()

    def _load(self) -> None:
        """Load config from all sources."""
        load_dotenv()

        data_dir = Path(os.environ.get("CALVIN_DATA_DIR", str(self.data_dir))).expanduser()
        config_file = data_dir / "config.yaml"
        if config_file.exists():
            try:
                with open(config_file) as f:
                    yaml_data = yaml.safe_load(f) or {}
                self._data.update(yaml_data)
            except Exception as e:
                logger.warning(f"Failed to load {config_file}: {e}")

        # Environment overrides (highest priority)
        for key in self.DEFAULTS:
            env_val = os.environ.get(key)
            if env_val is not None:
                self._data[key] = env_val

    # ── Properties ──

    @property
    def data_dir(self) -> Path:
        raw = self._data.get("CALVIN_DATA_DIR", str(DEFAULT_DATA_DIR))
        return Path(str(raw)).expanduser()

    @property
    def openai_api_key(self) -> str:
        return str(self._data.get("OPENAI_API_KEY", ""))

    @property
    def model(self) -> str:
        return str(self._data["CALVIN_MODEL"])

    @property
    def temperature(self) -> float:
        return float(self._data["CALVIN_TEMPERATURE"])

    @property
    def max_tokens(self) -> int:
        return int(self._data["CALVIN_MAX_TOKENS"])

    @property
    def timezone_name(self) -> str:
        return str(self._data["CALVIN_TIMEZONE"])

    @property
    def timezone(self) -> tzinfo:
        """Default viewer zone; requests may override it."""
        return resolve_timezone(self.timezone_name)

    @property
    def working_hours(self) -> WorkingHours:
        return WorkingHours.parse(
            str(self._data["CALVIN_WORKING_HOURS_START"]),
            str(self._data["CALVIN_WORKING_HOURS_END"]),
        )

    @property
    def history_window(self) -> int:
        return int(self._data["CALVIN_HISTORY_WINDOW"])

    @property
    def upcoming_count(self) -> int:
        return int(self._data["CALVIN_UPCOMING_COUNT"])

    @property
    def chat_rate_limit(self) -> int:
        return int(self._data["CALVIN_CHAT_RATE_LIMIT"])

    @property
    def chat_rate_window(self) -> float:
        return float(self._data["CALVIN_CHAT_RATE_WINDOW"])

    @property
    def calendar_rate_limit(self) -> int:
        return int(self._data["CALVIN_CALENDAR_RATE_LIMIT"])

    @property
    def calendar_rate_window(self) -> float:
        return float(self._data["CALVIN_CALENDAR_RATE_WINDOW"])

    @property
    def api_host(self) -> str:
        return str(self._data["CALVIN_API_HOST"])

    @property
    def api_port(self) -> int:
        return int(self._data["CALVIN_API_PORT"])

    @property
    def log_level(self) -> str:
        return str(self._data["CALVIN_LOG_LEVEL"]).upper()

    # ── Access ──

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has_api_key(self) -> bool:
        return bool(self.openai_api_key)

    # ── Persistence ──

    def save(self) -> None:
        """Save non-secret, non-default settings to YAML. Secrets stay in .env or env vars."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_file = self.data_dir / "config.yaml"

        safe_data = {
            k: v for k, v in self._data.items()
            if k not in self.SECRET_KEYS and v != self.DEFAULTS.get(k)
        }

        try:
            with open(config_file, "w") as f:
                yaml.dump(safe_data, f, default_flow_style=False)
            logger.info(f"Config saved to {config_file}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def __repr__(self) -> str:
        return (
            f"CalvinConfig(model={self.model}, timezone={self.timezone_name}, "
            f"openai={'yes' if self.has_api_key() else 'no'})"
        )
