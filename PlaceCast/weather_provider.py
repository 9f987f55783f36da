"""Weather provider abstraction - allows swapping different weather APIs."""
from abc import ABC, abstractmethod
from typing import List

from weather_data import Place, WeatherBundle
from weather_errors import ProviderErrorKind, WeatherProviderError

DEFAULT_SEARCH_LIMIT = 8


class WeatherProviderBase(ABC):
    """Abstract base class for weather data providers."""

    @abstractmethod
    def fetch_by_lat_lon(self, lat: float, lon: float) -> WeatherBundle:
        """
        Fetch current, hourly and daily weather for a coordinate.

        Returns:
            WeatherBundle: Fully populated bundle (Celsius, ascending dt)

        Raises:
            WeatherProviderError: If the provider fails to fetch data
        """
        pass

    @abstractmethod
    def search_places(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Place]:
        """
        Resolve a place-name query into candidate places.

        Raises:
            WeatherProviderError: NOT_FOUND when nothing matches, or on transport failure
        """
        pass


__all__ = ["WeatherProviderBase", "WeatherProviderError", "ProviderErrorKind", "DEFAULT_SEARCH_LIMIT"]
