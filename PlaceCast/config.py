"""Environment-driven settings (.env files are loaded via python-dotenv)."""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from weather_data import Place
from weather_db import DEFAULT_DATABASE_URL
from weather_repository import CACHE_TTL_SECONDS
from sync_service import SYNC_INTERVAL_SECONDS

DEFAULT_PLACE_NAME = "Home"


@dataclass
class Settings:
    api_key: Optional[str]
    database_url: str = DEFAULT_DATABASE_URL
    lang: str = "en"
    timeout: int = 10
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    sync_interval_seconds: int = SYNC_INTERVAL_SECONDS
    default_lat: Optional[float] = None
    default_lon: Optional[float] = None
    default_place_name: str = DEFAULT_PLACE_NAME

    def require_api_key(self) -> str:
        if not self.api_key:
            raise SystemExit("Missing WEATHER_API_KEY in environment")
        return self.api_key

    def default_place(self) -> Optional[Place]:
        """First-run place from WEATHER_LAT/WEATHER_LON, if configured."""
        if self.default_lat is None or self.default_lon is None:
            return None
        return Place.from_coordinates(self.default_place_name, self.default_lat, self.default_lon)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid {name}: {value!r} is not an integer") from exc
    if parsed <= 0:
        raise SystemExit(f"Invalid {name}: must be positive")
    return parsed


def _coordinates() -> tuple:
    lat = os.getenv("WEATHER_LAT")
    lon = os.getenv("WEATHER_LON")
    if not lat and not lon:
        return None, None
    if not lat or not lon:
        raise SystemExit("WEATHER_LAT and WEATHER_LON must be set together")
    try:
        lat_val = float(lat)
        lon_val = float(lon)
    except ValueError as exc:
        raise SystemExit(f"Invalid coordinates: {exc}") from exc
    if not -90.0 <= lat_val <= 90.0 or not -180.0 <= lon_val <= 180.0:
        raise SystemExit(f"Coordinates out of range: lat={lat_val} lon={lon_val}")
    return lat_val, lon_val


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path)
    lat, lon = _coordinates()
    settings = Settings(
        api_key=os.getenv("WEATHER_API_KEY"),
        database_url=os.getenv("WEATHER_DB_URL") or DEFAULT_DATABASE_URL,
        lang=os.getenv("WEATHER_LANG", "en"),
        timeout=_int_env("WEATHER_TIMEOUT", 10),
        cache_ttl_seconds=_int_env("WEATHER_CACHE_TTL", CACHE_TTL_SECONDS),
        sync_interval_seconds=_int_env("WEATHER_SYNC_INTERVAL", SYNC_INTERVAL_SECONDS),
        default_lat=lat,
        default_lon=lon,
        default_place_name=os.getenv("WEATHER_PLACE_NAME") or DEFAULT_PLACE_NAME,
    )
    logging.info(
        "Configuration loaded: db=%s ttl=%ss sync=%ss default=%s",
        settings.database_url,
        settings.cache_ttl_seconds,
        settings.sync_interval_seconds,
        (lat, lon) if lat is not None else "none",
    )
    return settings
