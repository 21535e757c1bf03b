"""
config.py
Environment / .env settings for the bot. Read once at startup.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

import data_manager as dm
from errors import ConfigurationMissing


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationMissing(f"{name} must be an integer, got {raw!r}")


def _env_ttl_seconds(name: str, default_hours: float):
    """Hours in the env, seconds out. 0 / 'off' / 'manual' = no TTL."""
    raw = os.getenv(name)
    if raw is None:
        return default_hours * 3600
    raw = raw.strip().lower()
    if raw in ("", "0", "off", "none", "manual"):
        return None
    try:
        return float(raw) * 3600
    except ValueError:
        raise ConfigurationMissing(f"{name} must be a number of hours, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    discord_token:   str | None
    sources:         dict = field(default_factory=dict)
    cache_ttl_s:     float | None = dm.DEFAULT_TTL_S
    min_games:       int = 5
    admin_user_ids:  frozenset = frozenset()
    fetch_timeout_s: float = dm.DEFAULT_TIMEOUT_S
    port:            int = 8000


def load_settings(dotenv: bool = True) -> Settings:
    if dotenv:
        load_dotenv()
    sources = {
        dm.WARSCROLLS: os.getenv("WARSCROLL_CSV_URL") or os.getenv("SHEET_CSV_URL"),
        dm.FACTIONS:   os.getenv("FACTION_CSV_URL"),
        dm.LEAGUE:     os.getenv("LEAGUE_CSV_URL"),
    }
    try:
        admins = frozenset(int(x) for x in os.getenv("ADMIN_USER_IDS", "").split(",") if x.strip())
    except ValueError:
        raise ConfigurationMissing("ADMIN_USER_IDS must be a comma-separated list of user ids")
    return Settings(
        discord_token=os.getenv("DISCORD_TOKEN"),
        sources=sources,
        cache_ttl_s=_env_ttl_seconds("CACHE_TTL_HOURS", 24),
        min_games=_env_int("MIN_GAMES", 5),
        admin_user_ids=admins,
        fetch_timeout_s=_env_int("FETCH_TIMEOUT_S", dm.DEFAULT_TIMEOUT_S),
        port=_env_int("PORT", 8000),
    )


def validate(settings: Settings) -> Settings:
    """Fail fast on anything the bot cannot start without."""
    missing = []
    if not settings.discord_token:
        missing.append("DISCORD_TOKEN")
    if not settings.sources.get(dm.WARSCROLLS):
        missing.append("WARSCROLL_CSV_URL (or SHEET_CSV_URL)")
    if missing:
        raise ConfigurationMissing("Missing env var(s): " + ", ".join(missing))
    return settings
