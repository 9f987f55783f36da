"""OpenWeather Current Weather + 5-day Forecast + Geocoding provider implementation."""
import logging
from typing import Any, Dict, List

import requests

from weather_data import Place, WeatherBundle
from weather_mapper import map_place, map_weather_bundle
from weather_provider import (
    DEFAULT_SEARCH_LIMIT,
    ProviderErrorKind,
    WeatherProviderBase,
    WeatherProviderError,
)

STATUS_KINDS = {
    401: ProviderErrorKind.INVALID_CREDENTIAL,
    404: ProviderErrorKind.NOT_FOUND,
}


class OpenWeatherProvider(WeatherProviderBase):
    """
    Weather provider using the free OpenWeather APIs.

    Uses Current Weather (https://openweathermap.org/current), the 5 day / 3 hour
    forecast (https://openweathermap.org/forecast5) and direct geocoding for search.
    Requests are always made with units=metric so Celsius is authoritative.
    """

    BASE_URL = "https://api.openweathermap.org"
    CURRENT_PATH = "/data/2.5/weather"
    FORECAST_PATH = "/data/2.5/forecast"
    GEOCODING_PATH = "/geo/1.0/direct"

    def __init__(self, api_key: str, lang: str = "en", timeout: int = 10, base_url: str = BASE_URL):
        """
        Initialize OpenWeather provider.

        Args:
            api_key: OpenWeather API key
            lang: Language code for descriptions (e.g., "en", "de")
            timeout: HTTP request timeout in seconds, per request
            base_url: API root, overridable for proxies and tests
        """
        self.api_key = api_key
        self.lang = lang
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def fetch_by_lat_lon(self, lat: float, lon: float) -> WeatherBundle:
        params = {"lat": lat, "lon": lon, "units": "metric", "lang": self.lang}
        current = self._get_json(self.CURRENT_PATH, params)
        forecast = self._get_json(self.FORECAST_PATH, params)
        try:
            bundle = map_weather_bundle(current, forecast)
        except (KeyError, ValueError, TypeError) as e:
            logging.error(f"Failed to parse weather response: {e}", exc_info=True)
            raise WeatherProviderError(ProviderErrorKind.UNKNOWN, f"Failed to parse response: {e}") from e
        logging.info(
            f"Fetched weather for ({lat}, {lon}): {bundle.now.temp_c}°C, {bundle.now.condition}, "
            f"{len(bundle.hourly)} hourly, {len(bundle.daily)} daily"
        )
        return bundle

    def search_places(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Place]:
        results = self._get_json(self.GEOCODING_PATH, {"q": query, "limit": limit})
        if not results:
            raise WeatherProviderError(ProviderErrorKind.NOT_FOUND, f"No places found for query: {query}")
        try:
            places = [map_place(result) for result in results[:limit]]
        except (KeyError, ValueError, TypeError) as e:
            raise WeatherProviderError(ProviderErrorKind.UNKNOWN, f"Failed to parse search response: {e}") from e
        logging.info(f"Search '{query}' returned {len(places)} places")
        return places

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        params = dict(params, appid=self.api_key)
        try:
            logging.debug(f"Making OpenWeather API request: {url}")
            response = requests.get(url, params=params, timeout=self.timeout)
            logging.debug(f"API response status: {response.status_code}")
        except requests.exceptions.Timeout as e:
            logging.error(f"Request to {url} timed out: {e}")
            raise WeatherProviderError(ProviderErrorKind.TIMEOUT, "Request timed out") from e
        except requests.exceptions.ConnectionError as e:
            logging.error(f"No connection to {url}: {e}")
            raise WeatherProviderError(ProviderErrorKind.NO_CONNECTIVITY, f"No internet connection: {e}") from e
        except requests.exceptions.RequestException as e:
            logging.error(f"Network error during API request: {e}")
            raise WeatherProviderError(ProviderErrorKind.UNKNOWN, f"Network error: {e}") from e

        if not response.ok:
            self._handle_error_response(response)

        try:
            return response.json()
        except ValueError as e:
            raise WeatherProviderError(ProviderErrorKind.UNKNOWN, f"Failed to parse response: {e}") from e

    def _handle_error_response(self, response: requests.Response) -> None:
        """Classify and raise an OpenWeather error response."""
        kind = STATUS_KINDS.get(response.status_code, ProviderErrorKind.UNKNOWN)
        try:
            error_data = response.json()
            message = error_data.get("message", "Unknown error")
        except ValueError:
            logging.error(f"Non-JSON error response: HTTP {response.status_code}, body: {response.text[:500]}")
            message = response.text[:200]
        logging.error(f"OpenWeather API error {response.status_code}: {message}")
        raise WeatherProviderError(kind, f"OpenWeather API error {response.status_code}: {message}")
