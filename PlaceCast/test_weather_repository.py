"""Tests for the weather repository freshness policy and facade."""
import threading
from unittest.mock import Mock

import pytest

from conftest import MockProvider, make_bundle, make_place
from location_provider import FixedLocationProvider
from weather_data import Place
from weather_errors import (
    CapacityExceededError,
    LocationUnavailableError,
    PlaceNotFoundError,
    ProviderErrorKind,
    WeatherProviderError,
)
from weather_repository import CACHE_TTL_SECONDS, CacheState, WeatherRepository, freshness

TTL_MS = CACHE_TTL_SECONDS * 1000


@pytest.fixture
def place():
    return make_place("p1")


@pytest.fixture
def bundle(place):
    return make_bundle(place)


def build_repository(registry, cache_store, provider, **kwargs):
    return WeatherRepository(provider=provider, registry=registry, cache_store=cache_store, **kwargs)


@pytest.mark.parametrize(
    "cached_at, now, force, expected",
    [
        (None, 1_000_000, False, CacheState.ABSENT),
        (None, 1_000_000, True, CacheState.ABSENT),
        (1_000_000, 1_000_000, False, CacheState.FRESH),
        (1_000_000, 1_000_000 + TTL_MS - 1, False, CacheState.FRESH),
        (1_000_000, 1_000_000 + TTL_MS, False, CacheState.STALE),
        (1_000_000, 1_000_000 + 1, True, CacheState.STALE),
        (1_000_000, 999_999, False, CacheState.STALE),
    ],
)
def test_freshness(cached_at, now, force, expected):
    assert freshness(cached_at, now, TTL_MS, force) is expected


def test_empty_cache_fetches_once_and_caches(registry, cache_store, place, bundle):
    """Cache empty for p1 -> provider invoked once, bundle cached and returned."""
    registry.add(place)
    provider = MockProvider(bundle)
    repository = build_repository(registry, cache_store, provider)

    result = repository.weather_for(place)

    assert provider.call_count == 1
    assert provider.calls == [(place.lat, place.lon)]
    assert result == bundle
    assert cache_store.get("p1").bundle == bundle


@pytest.mark.parametrize(
    "age_seconds, hits_network",
    [(0, False), (60, False), (CACHE_TTL_SECONDS - 1, False), (CACHE_TTL_SECONDS, True), (20 * 60, True)],
)
def test_ttl_boundary(registry, cache_store, clock, place, bundle, age_seconds, hits_network):
    """The provider is called iff the cache is at least 15 minutes old."""
    registry.add(place)
    cache_store.put(bundle, "p1")
    clock.advance(age_seconds)
    fresh_bundle = make_bundle(place, temp_c=30.0)
    provider = MockProvider(fresh_bundle)
    repository = build_repository(registry, cache_store, provider)

    result = repository.weather_for(place, force_refresh=False)

    assert provider.call_count == (1 if hits_network else 0)
    assert result == (fresh_bundle if hits_network else bundle)


def test_fresh_cache_survives_provider_outage(registry, cache_store, clock, place, bundle):
    registry.add(place)
    cache_store.put(bundle, "p1")
    clock.advance(60)
    provider = MockProvider(WeatherProviderError(ProviderErrorKind.NO_CONNECTIVITY, "offline"))
    repository = build_repository(registry, cache_store, provider)

    assert repository.weather_for(place) == bundle
    assert provider.call_count == 0


def test_force_refresh_bypasses_fresh_cache(registry, cache_store, place, bundle):
    registry.add(place)
    cache_store.put(bundle, "p1")
    fresh_bundle = make_bundle(place, temp_c=30.0)
    provider = MockProvider(fresh_bundle)
    repository = build_repository(registry, cache_store, provider)

    result = repository.weather_for(place, force_refresh=True)

    assert provider.call_count == 1
    assert result == fresh_bundle
    assert cache_store.get("p1").bundle == fresh_bundle


def test_stale_cache_and_failure_raises_and_keeps_cache(registry, cache_store, clock, place, bundle):
    """Cache 20 minutes old, provider NotFound -> error propagates, cache unchanged."""
    registry.add(place)
    cache_store.put(bundle, "p1")
    cached_before = cache_store.get("p1")
    clock.advance(20 * 60)
    provider = MockProvider(WeatherProviderError(ProviderErrorKind.NOT_FOUND, "Location not found"))
    repository = build_repository(registry, cache_store, provider)

    with pytest.raises(WeatherProviderError) as exc_info:
        repository.weather_for(place, force_refresh=False)

    assert exc_info.value.kind is ProviderErrorKind.NOT_FOUND
    assert cache_store.get("p1") == cached_before


def test_forced_refresh_failure_does_not_fall_back(registry, cache_store, place, bundle):
    registry.add(place)
    cache_store.put(bundle, "p1")
    provider = MockProvider(WeatherProviderError(ProviderErrorKind.TIMEOUT, "timed out"))
    repository = build_repository(registry, cache_store, provider)

    with pytest.raises(WeatherProviderError):
        repository.weather_for(place, force_refresh=True)

    assert cache_store.get("p1").bundle == bundle


def test_unsaved_place_is_fetched_but_not_cached(registry, cache_store, place, bundle):
    provider = MockProvider(bundle)
    repository = build_repository(registry, cache_store, provider)

    assert repository.weather_for(place) == bundle
    assert repository.weather_for(place) == bundle

    assert provider.call_count == 2
    assert cache_store.get("p1") is None


def test_concurrent_refreshes_of_one_place_leave_a_whole_bundle(registry, cache_store, place):
    registry.add(place)
    bundles = [make_bundle(place, temp_c=float(i)) for i in range(6)]
    provider = Mock()
    provider.fetch_by_lat_lon.side_effect = bundles
    repository = build_repository(registry, cache_store, provider)

    threads = [threading.Thread(target=repository.weather_for, args=(place, True)) for _ in bundles]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cache_store.get("p1").bundle in bundles


def test_registry_facade(registry, cache_store, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    p1, p2 = make_place("p1"), make_place("p2")

    repository.add_place(p1)
    repository.add_place(p2)
    repository.set_primary("p2")

    assert repository.saved_places() == [p2, p1]
    assert repository.primary_place() == p2
    assert repository.remove_place("p2") is True
    assert repository.saved_places() == [p1]
    assert repository.primary_place() == p1


def test_registry_errors_surface_unchanged(registry, cache_store, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    for i in range(10):
        repository.add_place(make_place(f"p{i}"))

    with pytest.raises(CapacityExceededError):
        repository.add_place(make_place("p10"))
    with pytest.raises(PlaceNotFoundError):
        repository.set_primary("missing")


def test_remove_place_deletes_cached_weather(registry, cache_store, place, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    repository.add_place(place)
    repository.weather_for(place)

    repository.remove_place("p1")

    assert cache_store.get("p1") is None
    assert repository.cache_timestamp("p1") is None


def test_has_cached_data(registry, cache_store, place, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    assert repository.has_cached_data() is False

    repository.add_place(place)
    assert repository.has_cached_data() is False

    repository.weather_for(place)
    assert repository.has_cached_data() is True


def test_ensure_default_place_only_on_first_run(registry, cache_store, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    home = make_place("home")

    assert repository.ensure_default_place(home) is True
    assert repository.ensure_default_place(make_place("other")) is False
    assert repository.saved_places() == [home]


def test_search_places_delegates_to_provider(registry, cache_store, bundle):
    results = [make_place("a"), make_place("b"), make_place("c")]
    repository = build_repository(registry, cache_store, MockProvider(bundle, search_results=results))

    assert repository.search_places("town", limit=2) == results[:2]


def test_current_location_place(registry, cache_store, bundle):
    repository = build_repository(
        registry, cache_store, MockProvider(bundle), location_provider=FixedLocationProvider(48.8566, 2.3522)
    )

    place = repository.current_location_place()

    assert place.id == "48.8566_2.3522"
    assert (place.lat, place.lon) == (48.8566, 2.3522)


def test_current_location_unavailable(registry, cache_store, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle), location_provider=FixedLocationProvider())

    with pytest.raises(LocationUnavailableError):
        repository.current_location_place()


def test_watch_weather_emits_on_change_only(registry, cache_store, clock, place, bundle):
    registry.add(place)
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    stop = threading.Event()
    stream = repository.watch_weather("p1", poll_interval=0, stop_event=stop)

    assert next(stream) is None

    cache_store.put(bundle, "p1")
    assert next(stream) == bundle

    # Same values re-cached: nothing new until the bundle actually changes
    cache_store.put(bundle, "p1")
    updated = make_bundle(place, temp_c=31.0)
    cache_store.put(updated, "p1")
    assert next(stream) == updated

    stop.set()
    with pytest.raises(StopIteration):
        next(stream)


def test_refresh_all_collects_results_per_place(registry, cache_store, clock):
    p1, p2 = make_place("p1", lat=1.0), make_place("p2", lat=2.0)
    registry.add(p1)
    registry.add(p2)
    cache_store.put(make_bundle(p1), "p1")
    error = WeatherProviderError(ProviderErrorKind.TIMEOUT, "timed out")
    fresh = make_bundle(p1, temp_c=30.0)
    provider = MockProvider(fresh, error)
    repository = build_repository(registry, cache_store, provider)

    results = repository.refresh_all()

    assert results == {"p1": fresh, "p2": error}
    assert provider.call_count == 2
    assert cache_store.get("p1").bundle == fresh
    assert cache_store.get("p2") is None


def test_fetched_bundle_carries_requested_place(registry, cache_store, clock):
    """A fetch and a later cache hit return the same bundle, named after the saved place."""
    london = make_place("p1", name="London, England, GB", lat=51.5073, lon=-0.1276)
    registry.add(london)
    geocoded = Place.from_coordinates("Westminster", 51.5085, -0.1257)
    provider = MockProvider(make_bundle(geocoded))
    repository = build_repository(registry, cache_store, provider)

    first = repository.weather_for(london)
    clock.advance(60)
    second = repository.weather_for(london)

    assert provider.call_count == 1
    assert first.place == london
    assert second == first


def test_ensure_default_place_in_concurrent_first_runs(registry, cache_store, bundle):
    repository = build_repository(registry, cache_store, MockProvider(bundle))
    candidates = [make_place(f"home{i}") for i in range(8)]
    added = []

    def first_run(place):
        if repository.ensure_default_place(place):
            added.append(place)

    threads = [threading.Thread(target=first_run, args=(place,)) for place in candidates]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(added) == 1
    assert repository.saved_places() == added
