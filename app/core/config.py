from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    engine_db_path: str
    badge_catalog_path: str
    badge_backfill_batch_size: int
    badge_backfill_delay_ms: int
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int


settings = Settings(
    api_key=_get_env("API_KEY"),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
            "http://localhost:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    engine_db_path=_get_env("ENGINE_DB_PATH", "data/engine.db") or "data/engine.db",
    badge_catalog_path=_get_env("BADGE_CATALOG_PATH", "config/badges.yaml") or "config/badges.yaml",
    badge_backfill_batch_size=_get_env_int("BADGE_BACKFILL_BATCH_SIZE", 10),
    badge_backfill_delay_ms=_get_env_int("BADGE_BACKFILL_DELAY_MS", 100),
    analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
    analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
    analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 180),
)

if settings.badge_backfill_batch_size < 1:
    raise RuntimeError("BADGE_BACKFILL_BATCH_SIZE must be at least 1.")

if settings.badge_backfill_delay_ms < 0:
    raise RuntimeError("BADGE_BACKFILL_DELAY_MS must not be negative.")
