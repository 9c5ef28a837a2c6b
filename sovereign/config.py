from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sovereign import db

ENV_PREFIX = "SOVEREIGN_"


def _env(name: str, default: str = "") -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path
    user_id: str = "default"
    timezone: str = "UTC"
    generator_url: str = ""
    generator_timeout: float = 8.0
    generator_api_key: str = ""
    discord_webhook_url: str = ""
    ntfy_topic_url: str = ""
    content_pack: str = "default"
    log_level: str = "INFO"


def load_settings() -> Settings:
    return Settings(
        db_path=Path(_env("DB_PATH") or db.DB_PATH),
        user_id=_env("USER_ID", "default") or "default",
        timezone=_env("TIMEZONE", "UTC") or "UTC",
        generator_url=_env("GENERATOR_URL"),
        generator_timeout=_env_float("GENERATOR_TIMEOUT", 8.0),
        generator_api_key=_env("GENERATOR_API_KEY"),
        discord_webhook_url=_env("DISCORD_WEBHOOK_URL"),
        ntfy_topic_url=_env("NTFY_TOPIC_URL"),
        content_pack=_env("CONTENT_PACK", "default") or "default",
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
