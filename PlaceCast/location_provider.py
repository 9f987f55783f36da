"""Device location providers. Best effort: "no location" is None, never an exception."""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import requests

LatLon = Tuple[float, float]


class LocationProviderBase(ABC):
    """Abstract base class for location providers."""

    @abstractmethod
    def current_lat_lon_or_none(self) -> Optional[LatLon]:
        """
        Resolve the current coordinates.

        Returns:
            (lat, lon) if available, None otherwise
        """
        pass


class FixedLocationProvider(LocationProviderBase):
    """Manually configured location, e.g. from WEATHER_LAT/WEATHER_LON."""

    def __init__(self, lat: Optional[float] = None, lon: Optional[float] = None):
        self.lat = lat
        self.lon = lon

    def set_location(self, lat: float, lon: float) -> None:
        self.lat = lat
        self.lon = lon

    def clear_location(self) -> None:
        self.lat = None
        self.lon = None

    def current_lat_lon_or_none(self) -> Optional[LatLon]:
        if self.lat is None or self.lon is None:
            return None
        return self.lat, self.lon


class IpGeoLocationProvider(LocationProviderBase):
    """
    Approximate location from the public IP address.

    Results are cached in memory to avoid hitting the geolocation service on
    every call. Any transport or parse failure resolves to None.
    """

    URL = "https://ipapi.co/json/"

    def __init__(
        self,
        url: str = URL,
        timeout: int = 5,
        cache_ttl_seconds: int = 30 * 60,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.timeout = timeout
        self.cache_ttl_seconds = cache_ttl_seconds
        self._time_func = time_func
        self._cached: Optional[LatLon] = None
        self._cached_at = 0.0

    def current_lat_lon_or_none(self) -> Optional[LatLon]:
        if self._cached is not None and self._time_func() - self._cached_at <= self.cache_ttl_seconds:
            return self._cached

        location = self._lookup()
        if location is not None:
            self._cached = location
            self._cached_at = self._time_func()
        return location

    def clear_cache(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    def _lookup(self) -> Optional[LatLon]:
        try:
            response = requests.get(
                self.url,
                headers={"User-Agent": "PlaceCast/1.0"},
                timeout=self.timeout,
            )
            if not response.ok:
                logging.warning(f"IP geolocation failed: HTTP {response.status_code}")
                return None
            data = response.json()
            return float(data["latitude"]), float(data["longitude"])
        except requests.exceptions.RequestException as e:
            logging.warning(f"IP geolocation request failed: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logging.warning(f"IP geolocation response unusable: {e}")
            return None
