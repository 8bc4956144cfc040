"""chatcast application configuration.

Settings are read from a single YAML file, ``chatcast.settings.yaml`` in the
working directory by default. The ``CHATCAST_SETTINGS`` environment variable
points at a different file. Every key is optional; a missing file yields
the defaults below.

Example::

    server:
      host: 0.0.0.0
      port: 3000
    chat:
      history_capacity: 100
      sweep_interval_seconds: 30
    logging:
      level: debug
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chatcast.settings.yaml")
SETTINGS_ENV_VAR = "CHATCAST_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s (using defaults)", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return data


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = Field(default=3000, ge=1, le=65535)
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    static_dir:      str       = "public"


class ChatSettings(BaseModel):
    """Limits and timers for the chat core."""
    history_capacity:       int   = Field(default=100, ge=1)
    welcome_history_limit:  int   = Field(default=10, ge=0)
    default_history_limit:  int   = Field(default=20, ge=1)
    sweep_interval_seconds: float = Field(default=30.0, gt=0)
    welcome_message:        str   = "Welcome to the chat room!"


LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value} (expected one of {', '.join(LOG_LEVELS)})")
        return value


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML into an *AppConfig*.

    Args:
        settings_path: Explicit file to read. Falls back to
            ``$CHATCAST_SETTINGS`` and then ``chatcast.settings.yaml``.
    """
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    config = AppConfig(**_load_yaml(Path(settings_path)))
    logger.info(
        "Settings loaded (server=%s:%s, history_capacity=%d, sweep_interval=%ss)",
        config.server.host,
        config.server.port,
        config.chat.history_capacity,
        config.chat.sweep_interval_seconds,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads it."""
    global _config
    _config = None
