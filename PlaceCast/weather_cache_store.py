"""Persistent weather cache: one wholesale-replaced bundle per saved place."""
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import select

from weather_data import WeatherBundle
from weather_db import (
    Database,
    PlaceRow,
    WeatherDailyRow,
    WeatherHourlyRow,
    WeatherNowRow,
    bundle_to_rows,
    delete_weather_rows,
    rows_to_bundle,
)
from weather_errors import PlaceNotFoundError


@dataclass(frozen=True)
class CachedWeather:
    bundle: WeatherBundle
    cached_at: int  # epoch millis


class WeatherCacheStore:
    """
    Maps place id -> last fetched WeatherBundle and its fetch time.

    put() replaces the now/hourly/daily rows of a place in one transaction and
    get() reads them in one transaction, so a reader never pairs a new "now"
    with old hourly or daily rows.
    """

    def __init__(self, database: Database, clock: Callable[[], float] = time.time):
        self.database = database
        self._clock = clock

    def now_millis(self) -> int:
        return int(self._clock() * 1000)

    def get(self, place_id: str) -> Optional[CachedWeather]:
        with self.database.read() as session:
            now_row = session.get(WeatherNowRow, place_id)
            if now_row is None:
                return None
            place_row = session.get(PlaceRow, place_id)
            if place_row is None:
                return None
            hourly_rows = session.scalars(
                select(WeatherHourlyRow).where(WeatherHourlyRow.place_id == place_id).order_by(WeatherHourlyRow.dt)
            ).all()
            daily_rows = session.scalars(
                select(WeatherDailyRow).where(WeatherDailyRow.place_id == place_id).order_by(WeatherDailyRow.dt)
            ).all()
            return CachedWeather(
                bundle=rows_to_bundle(place_row, now_row, hourly_rows, daily_rows),
                cached_at=now_row.cached_at,
            )

    def put(self, bundle: WeatherBundle, place_id: str) -> None:
        """
        Replace the cached bundle of place_id, stamping it with the current time.

        Raises:
            PlaceNotFoundError: If place_id is not a saved place
        """
        cached_at = self.now_millis()
        now_row, hourly_rows, daily_rows = bundle_to_rows(bundle, place_id, cached_at)
        with self.database.write() as session:
            if session.get(PlaceRow, place_id) is None:
                raise PlaceNotFoundError(place_id)
            delete_weather_rows(session, place_id)
            session.add(now_row)
            session.add_all(hourly_rows)
            session.add_all(daily_rows)
        logging.debug(f"Cached weather for {place_id}: {len(hourly_rows)} hourly, {len(daily_rows)} daily")

    def delete(self, place_id: str) -> None:
        with self.database.write() as session:
            delete_weather_rows(session, place_id)
        logging.debug(f"Deleted cached weather for {place_id}")

    def cached_at(self, place_id: str) -> Optional[int]:
        with self.database.read() as session:
            return session.scalar(select(WeatherNowRow.cached_at).where(WeatherNowRow.place_id == place_id))

    def cache_age(self, place_id: str) -> Optional[timedelta]:
        cached_at = self.cached_at(place_id)
        if cached_at is None:
            return None
        return timedelta(milliseconds=self.now_millis() - cached_at)
