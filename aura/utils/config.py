"""Runtime settings sourced from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


DEFAULT_RESIDENCES: tuple[str, ...] = (
    "Dagbreek",
    "Eendrag",
    "Goldfields",
    "Harmonie",
    "Helshoogte",
    "Huis Marais",
    "Huis Neethling",
    "Huis Visser",
    "Irene",
    "Majuba",
    "Metanoia",
    "Monica",
    "Nemesia",
    "Nkosi Johnson",
    "Simonsberg",
    "Wimbledon",
)


@dataclass(frozen=True)
class Settings:
    app_name: str = "DYP Aura Laundry"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Machine registry
    residences: tuple[str, ...] = DEFAULT_RESIDENCES
    washers_per_residence: int = 5
    dryers_per_residence: int = 3
    washer_durations_minutes: tuple[int, ...] = (30, 45, 60)
    dryer_durations_minutes: tuple[int, ...] = (40, 60, 75)
    admin_name: str = "admin"

    # Tick driver and escalation windows
    tick_interval_seconds: float = 1.0
    almost_done_minutes: int = 5
    urgent_minutes: int = 2
    idle_too_long_minutes: int = 30

    # Gamification
    on_time_grace_minutes: int = 5
    collection_base_points: int = 10
    exact_collection_points: int = 15

    # Queue and slot scheduling
    queue_minutes_per_turn: int = 60
    reminder_offsets_minutes: tuple[int, ...] = (24 * 60, 60, 15)

    # Retention
    alert_retention_minutes: int = 60
    notification_retention_days: int = 7

    # External AI collaborator
    ai_enabled: bool = False
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_request_timeout_seconds: float = 10.0
    ai_cache_ttl_seconds: int = 300
    ai_min_request_interval_seconds: float = 1.0
    prediction_default_delay_minutes: int = 4
    prediction_max_delay_minutes: int = 30
    prediction_fallback_min_minutes: int = 3
    prediction_fallback_max_minutes: int = 15


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_csv(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call ``cache_clear`` to reload."""
    _load_env_file(Path(".env"))
    defaults = Settings()

    api_key = os.getenv("AURA_GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY")
    return Settings(
        app_name=os.getenv("AURA_APP_NAME", defaults.app_name),
        app_version=os.getenv("AURA_APP_VERSION", defaults.app_version),
        log_level=os.getenv("AURA_LOG_LEVEL", defaults.log_level),
        residences=_parse_csv(os.getenv("AURA_RESIDENCES"), defaults.residences),
        washers_per_residence=_parse_int(
            os.getenv("AURA_WASHERS_PER_RESIDENCE"), defaults.washers_per_residence
        ),
        dryers_per_residence=_parse_int(
            os.getenv("AURA_DRYERS_PER_RESIDENCE"), defaults.dryers_per_residence
        ),
        admin_name=os.getenv("AURA_ADMIN_NAME", defaults.admin_name),
        tick_interval_seconds=_parse_float(
            os.getenv("AURA_TICK_INTERVAL_SECONDS"), defaults.tick_interval_seconds
        ),
        ai_enabled=_parse_bool(os.getenv("AURA_AI_ENABLED"), default=bool(api_key)),
        gemini_api_key=api_key,
        gemini_model=os.getenv("AURA_GEMINI_MODEL", defaults.gemini_model),
        ai_request_timeout_seconds=_parse_float(
            os.getenv("AURA_AI_TIMEOUT_SECONDS"), defaults.ai_request_timeout_seconds
        ),
    )
