"""Shared fixtures: a file-backed database, a controllable clock and a mock provider."""
import pytest

from place_registry import PlaceRegistry
from weather_cache_store import WeatherCacheStore
from weather_data import Place, WeatherBundle, WeatherDaily, WeatherHourly, WeatherNow
from weather_db import Database
from weather_provider import WeatherProviderBase

T0 = 1_700_000_000  # 2023-11-14T22:13:20Z


class FakeClock:
    """Callable clock in epoch seconds that only moves when told to."""

    def __init__(self, start: float = T0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockProvider(WeatherProviderBase):
    """Mock weather provider; outcomes are consumed in order, the last one repeats."""

    def __init__(self, *outcomes, search_results=None):
        self.outcomes = list(outcomes)
        self.search_results = search_results or []
        self.call_count = 0
        self.calls = []

    def fetch_by_lat_lon(self, lat, lon):
        self.call_count += 1
        self.calls.append((lat, lon))
        outcome = self.outcomes[min(self.call_count, len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def search_places(self, query, limit=8):
        return self.search_results[:limit]


def make_place(place_id: str = "p1", name: str = "Testville", lat: float = 33.44, lon: float = -94.04) -> Place:
    return Place(id=place_id, name=name, lat=lat, lon=lon)


def make_bundle(place: Place, temp_c: float = 20.0, dt: int = T0) -> WeatherBundle:
    return WeatherBundle(
        now=WeatherNow(
            temp_c=temp_c,
            condition="Clear sky",
            icon="01d",
            humidity=60,
            wind_kph=18.0,
            feels_like_c=temp_c - 1.0,
            dt=dt,
        ),
        hourly=[WeatherHourly(dt=dt + i * 3 * 3600, temp_c=temp_c + i, icon="01d", precip_mm=0.0) for i in range(8)],
        daily=[WeatherDaily(dt=dt + i * 86400, min_c=temp_c - 5, max_c=temp_c + 5, icon="02d") for i in range(5)],
        place=place,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'weather.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def registry(database, clock):
    return PlaceRegistry(database, clock=clock)


@pytest.fixture
def cache_store(database, clock):
    return WeatherCacheStore(database, clock=clock)
