from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_url: str
    desk_booking_api_key: str
    admin_api_key: str
    cron_secret: str
    log_level: str
    default_timezone: str


def _get_env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip().strip('"').strip("'")


def _get_required_env(name: str) -> str:
    value = _get_env(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name="Desk Booking API",
        app_version="1.0.0",
        database_url=_get_required_env("DATABASE_URL"),
        desk_booking_api_key=_get_required_env("DESK_BOOKING_API_KEY"),
        admin_api_key=_get_required_env("ADMIN_API_KEY"),
        cron_secret=_get_env("CRON_SECRET"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper() or "INFO",
        default_timezone=_get_env("DEFAULT_TIMEZONE", "UTC") or "UTC",
    )
