"""Settings: deployment values from env vars, tunables from config/defaults.yaml."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULTS_FILE = _PROJECT_ROOT / "config" / "defaults.yaml"


class Settings(BaseSettings):
    fastchannel_env: str = "local"
    api_port: int = 8080

    # storage and the channel lock backend
    db_url: str = f"sqlite:///{_PROJECT_ROOT / 'data' / 'fastchannel.db'}"
    redis_url: str = "redis://localhost:6379/0"
    channel_lock_timeout_seconds: float = 30.0
    channel_lock_wait_seconds: float = 10.0

    # base URL the playout engine reaches us on
    public_url: str = "http://localhost:8080"

    log_json: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def get_defaults() -> dict[str, Any]:
    if not _DEFAULTS_FILE.exists():
        return {}
    with open(_DEFAULTS_FILE, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def tunable(path: str, default: Any) -> Any:
    """Look up a dotted key such as ``webhook.online_threshold_seconds``."""
    node: Any = get_defaults()
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def webhook_online_threshold_seconds() -> float:
    return float(tunable("webhook.online_threshold_seconds", 120))


def webhook_url() -> str:
    """Absolute URL to configure in the playout engine."""
    return f"{get_settings().public_url.rstrip('/')}/webhook/nextVod"
