"""Weather domain model - pure data structures independent of any API or storage."""
from dataclasses import dataclass
from typing import Tuple


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def place_id_for(lat: float, lon: float) -> str:
    """Deterministic place id for a coordinate pair (4 decimals, ~11m)."""
    return f"{lat:.4f}_{lon:.4f}"


@dataclass(frozen=True)
class Place:
    """A named geographic coordinate the user tracks weather for."""
    id: str
    name: str
    lat: float
    lon: float

    @classmethod
    def from_coordinates(cls, name: str, lat: float, lon: float) -> "Place":
        return cls(id=place_id_for(lat, lon), name=name, lat=lat, lon=lon)


@dataclass(frozen=True)
class WeatherNow:
    """Current conditions. Celsius is authoritative, Fahrenheit is derived."""
    temp_c: float
    condition: str  # e.g., "Broken clouds"
    icon: str  # provider icon code, e.g., "04d"
    humidity: int  # percentage
    wind_kph: float
    feels_like_c: float
    dt: int  # UNIX timestamp (UTC)

    @property
    def temp_f(self) -> float:
        return celsius_to_fahrenheit(self.temp_c)

    @property
    def feels_like_f(self) -> float:
        return celsius_to_fahrenheit(self.feels_like_c)


@dataclass(frozen=True)
class WeatherHourly:
    dt: int
    temp_c: float
    icon: str
    precip_mm: float

    @property
    def temp_f(self) -> float:
        return celsius_to_fahrenheit(self.temp_c)


@dataclass(frozen=True)
class WeatherDaily:
    dt: int  # first sample of the UTC day
    min_c: float
    max_c: float
    icon: str

    @property
    def min_f(self) -> float:
        return celsius_to_fahrenheit(self.min_c)

    @property
    def max_f(self) -> float:
        return celsius_to_fahrenheit(self.max_c)


@dataclass(frozen=True)
class WeatherBundle:
    """
    Current, hourly and daily weather for one place at one fetch time.

    The bundle is the unit of caching: it is always written and read whole.
    Sequences are stored as tuples so two bundles compare by value.
    """
    now: WeatherNow
    hourly: Tuple[WeatherHourly, ...]
    daily: Tuple[WeatherDaily, ...]
    place: Place

    def __post_init__(self):
        object.__setattr__(self, "hourly", tuple(self.hourly))
        object.__setattr__(self, "daily", tuple(self.daily))
