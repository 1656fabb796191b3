"""Application configuration using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

from smartnotify.common.constants import (
    MAX_ATTEMPTS,
    RATE_LIMIT_MAX,
    RATE_LIMIT_WINDOW_SECONDS,
)


class SmartNotifyConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    data_dir: Path = Path("notifications")
    config_dir: Path = Path("configs")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    rate_limit_window_seconds: int = RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max: int = RATE_LIMIT_MAX
    max_attempts: int = MAX_ATTEMPTS

    slack_webhook_url: str = ""
    webhook_url: str = ""
    webhook_timeout_seconds: float = 2.0

    model_config = {"env_prefix": "SMARTNOTIFY_", "case_sensitive": False}


__all__ = ["SmartNotifyConfig"]
