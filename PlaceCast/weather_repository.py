"""Weather repository: the freshness policy in front of the cache store and provider."""
import dataclasses
import logging
import threading
from enum import Enum
from typing import Dict, Iterator, List, Optional, Union

from location_provider import LocationProviderBase
from place_registry import PlaceRegistry
from weather_cache_store import WeatherCacheStore
from weather_data import Place, WeatherBundle
from weather_errors import LocationUnavailableError, PlaceNotFoundError, WeatherProviderError
from weather_provider import DEFAULT_SEARCH_LIMIT, WeatherProviderBase

CACHE_TTL_SECONDS = 15 * 60
CURRENT_LOCATION_NAME = "Current location"


class CacheState(Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


def freshness(cached_at_ms: Optional[int], now_ms: int, ttl_ms: int, force_refresh: bool = False) -> CacheState:
    """
    Classify a cache entry.

    A forced refresh treats any existing entry as stale. An entry stamped in the
    future (clock moved backwards) is stale rather than fresh forever.
    """
    if cached_at_ms is None:
        return CacheState.ABSENT
    age_ms = now_ms - cached_at_ms
    if force_refresh or age_ms < 0 or age_ms >= ttl_ms:
        return CacheState.STALE
    return CacheState.FRESH


class WeatherRepository:
    """
    Single entry point for weather reads and place management.

    weather_for(place) serves a fresh cache entry without touching the network;
    otherwise it fetches, caches and returns. A failed fetch raises and leaves
    the cache as it was: callers that accept stale data retry with
    force_refresh=False later, nothing falls back silently.
    """

    def __init__(
        self,
        provider: WeatherProviderBase,
        registry: PlaceRegistry,
        cache_store: WeatherCacheStore,
        location_provider: Optional[LocationProviderBase] = None,
        cache_ttl_seconds: int = CACHE_TTL_SECONDS,
    ):
        self.provider = provider
        self.registry = registry
        self.cache_store = cache_store
        self.location_provider = location_provider
        self.cache_ttl_seconds = cache_ttl_seconds

    @property
    def ttl_ms(self) -> int:
        return int(self.cache_ttl_seconds * 1000)

    def cache_state(self, place_id: str, force_refresh: bool = False) -> CacheState:
        return freshness(self.cache_store.cached_at(place_id), self.cache_store.now_millis(), self.ttl_ms, force_refresh)

    def weather_for(self, place: Place, force_refresh: bool = False) -> WeatherBundle:
        """
        Get weather for a place, from cache when fresh.

        Raises:
            WeatherProviderError: If a fetch was needed and failed
        """
        if not force_refresh:
            cached = self.cache_store.get(place.id)
            state = freshness(
                cached.cached_at if cached else None, self.cache_store.now_millis(), self.ttl_ms
            )
            if state is CacheState.FRESH:
                logging.debug(f"Using cached weather for {place.id}")
                return cached.bundle
            logging.info(f"Cache {state.value} for {place.id}, fetching new data")
        else:
            logging.info(f"Forced refresh for {place.id}")

        bundle = self.provider.fetch_by_lat_lon(place.lat, place.lon)
        # Bundles carry the requested place, not the provider's geocoded one
        bundle = dataclasses.replace(bundle, place=place)
        self._store(bundle, place.id)
        return bundle

    def _store(self, bundle: WeatherBundle, place_id: str) -> None:
        try:
            self.cache_store.put(bundle, place_id)
        except PlaceNotFoundError:
            # Cached weather lives and dies with a saved place
            logging.debug(f"{place_id} is not a saved place, weather not cached")

    def refresh_all(self) -> Dict[str, Union[WeatherBundle, WeatherProviderError]]:
        """Force-refresh every saved place once; failures are collected per place id."""
        results: Dict[str, Union[WeatherBundle, WeatherProviderError]] = {}
        for place in self.saved_places():
            try:
                results[place.id] = self.weather_for(place, force_refresh=True)
            except WeatherProviderError as e:
                logging.warning(f"Refresh of {place.id} failed: {e}")
                results[place.id] = e
        return results

    # Place registry facade --------------------------------------------------

    def saved_places(self) -> List[Place]:
        return self.registry.list_places()

    def primary_place(self) -> Optional[Place]:
        return self.registry.primary()

    def add_place(self, place: Place) -> None:
        self.registry.add(place)

    def remove_place(self, place_id: str) -> bool:
        return self.registry.remove(place_id)

    def set_primary(self, place_id: str) -> None:
        self.registry.set_primary(place_id)

    def ensure_default_place(self, place: Place) -> bool:
        """Add place on first run, when nothing is saved yet. Returns True if added."""
        if not self.registry.add_if_empty(place):
            return False
        logging.info(f"Added default place {place.name}")
        return True

    # Search, location and cache inspection ---------------------------------

    def search_places(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Place]:
        return self.provider.search_places(query, limit)

    def current_location_place(self, name: str = CURRENT_LOCATION_NAME) -> Place:
        """
        Place for the device's current coordinates.

        Raises:
            LocationUnavailableError: If no location could be resolved
        """
        coords = self.location_provider.current_lat_lon_or_none() if self.location_provider else None
        if coords is None:
            raise LocationUnavailableError()
        lat, lon = coords
        return Place.from_coordinates(name, lat, lon)

    def cache_timestamp(self, place_id: str) -> Optional[int]:
        return self.cache_store.cached_at(place_id)

    def has_cached_data(self) -> bool:
        """True if any saved place has cached weather, however old."""
        return any(self.cache_store.cached_at(place.id) is not None for place in self.saved_places())

    def watch_weather(
        self, place_id: str, poll_interval: float = 30.0, stop_event: Optional[threading.Event] = None
    ) -> Iterator[Optional[WeatherBundle]]:
        """
        Yield the cached bundle of place_id, then again each time it changes.

        Polls the cache store; a bundle equal to the previous one is not re-emitted.
        None is yielded while nothing is cached. Stops when stop_event is set.
        """
        stop_event = stop_event or threading.Event()
        unset = object()
        last = unset
        while not stop_event.is_set():
            cached = self.cache_store.get(place_id)
            current = cached.bundle if cached else None
            if last is unset or current != last:
                last = current
                yield current
            stop_event.wait(poll_interval)
