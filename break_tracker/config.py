from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    database_path: Path
    log_store_url: str | None
    geocoder_user_agent: str
    own_logs_limit: int
    leaderboard_size: int
    geolocation_timeout_seconds: float
    local_leaderboard_fallback: bool
    timezone: ZoneInfo


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_int_env(name: str, default: str | None = None) -> int:
    value = _required_env(name) if default is None else os.getenv(name, default).strip()
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _positive_float_env(name: str, default: str) -> float:
    value = os.getenv(name, default).strip()
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean")


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = os.getenv(name, default).strip()
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    store_url = os.getenv("LOG_STORE_URL", "").strip()

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_positive_int_env("GUILD_ID"),
        database_path=Path(os.getenv("DATABASE_PATH", "break_tracker.db").strip()),
        log_store_url=store_url or None,
        geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT", "BreakTracker/1.0").strip(),
        own_logs_limit=_positive_int_env("OWN_LOGS_LIMIT", "5"),
        leaderboard_size=_positive_int_env("LEADERBOARD_SIZE", "10"),
        geolocation_timeout_seconds=_positive_float_env("GEOLOCATION_TIMEOUT_SECONDS", "10"),
        local_leaderboard_fallback=_bool_env("LOCAL_LEADERBOARD_FALLBACK", True),
        timezone=_timezone_from_env("TIMEZONE", "UTC"),
    )
