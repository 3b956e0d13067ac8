from __future__ import annotations

"""Runtime settings for the helpdesk backend.

All values come from the process environment (``.env`` is loaded by the API
entry point). Development defaults keep the service runnable locally with the
in-memory store and no LLM key.

Env vars:
- DB_MODE / HELPDESK_STORE_IMPL ("memory" or "mongo")
- MONGO_URL, MONGO_DB
- JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRES_HOURS
- ADMIN_USERNAME, ADMIN_PASSWORD_HASH
- HELPDESK_MESSAGE_CAP, HELPDESK_GENERATOR_TIMEOUT
- ARTICLE_GENERATION_MORNING, ARTICLE_GENERATION_EVENING (crontab strings)
- HELPDESK_SCHEDULER_TIMEZONE, HELPDESK_SCHEDULER_ENABLED
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    store_impl: str = "memory"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "helpdesk"
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = 24
    admin_username: str = "admin"
    admin_password_hash: Optional[str] = None
    message_cap: int = 10
    generator_timeout: float = 30.0
    morning_cron: str = "0 9 * * *"
    evening_cron: str = "0 17 * * *"
    scheduler_timezone: Optional[str] = None
    scheduler_enabled: bool = True

    @staticmethod
    def from_env() -> "Settings":
        store_impl = (os.getenv("DB_MODE") or os.getenv("HELPDESK_STORE_IMPL") or "memory").lower()
        return Settings(
            store_impl=store_impl,
            mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
            mongo_db=os.getenv("MONGO_DB", "helpdesk"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expires_hours=_env_int("JWT_EXPIRES_HOURS", 24),
            admin_username=os.getenv("ADMIN_USERNAME", "admin"),
            admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH") or None,
            message_cap=_env_int("HELPDESK_MESSAGE_CAP", 10),
            generator_timeout=_env_float("HELPDESK_GENERATOR_TIMEOUT", 30.0),
            morning_cron=os.getenv("ARTICLE_GENERATION_MORNING", "0 9 * * *"),
            evening_cron=os.getenv("ARTICLE_GENERATION_EVENING", "0 17 * * *"),
            scheduler_timezone=os.getenv("HELPDESK_SCHEDULER_TIMEZONE") or None,
            scheduler_enabled=_env_flag("HELPDESK_SCHEDULER_ENABLED", True),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""

    global _settings
    _settings = None
