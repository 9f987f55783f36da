"""Tests for weather_data module."""
import dataclasses

import pytest

from weather_data import Place, WeatherBundle, WeatherDaily, WeatherHourly, WeatherNow, place_id_for


def test_place_id_is_deterministic():
    """Repeated lookups of the same coordinates collapse to one id."""
    first = Place.from_coordinates("London", 51.5073219, -0.1276474)
    second = Place.from_coordinates("London, GB", 51.50731, -0.12761)

    assert first.id == second.id == "51.5073_-0.1276"
    assert place_id_for(-33.8688, 151.2093) == "-33.8688_151.2093"


def test_place_is_immutable():
    place = Place(id="p1", name="Testville", lat=1.0, lon=2.0)

    with pytest.raises(dataclasses.FrozenInstanceError):
        place.name = "Elsewhere"


def test_weather_now_fahrenheit_is_derived():
    """Fahrenheit follows Celsius, it is not stored."""
    now = WeatherNow(
        temp_c=20.0,
        condition="Clear sky",
        icon="01d",
        humidity=65,
        wind_kph=10.0,
        feels_like_c=-40.0,
        dt=1609459200,
    )

    assert now.temp_f == 68.0
    assert now.feels_like_f == -40.0
    assert "temp_f" not in {f.name for f in dataclasses.fields(WeatherNow)}


def test_hourly_and_daily_fahrenheit():
    assert WeatherHourly(dt=0, temp_c=100.0, icon="01d", precip_mm=0.0).temp_f == 212.0
    daily = WeatherDaily(dt=0, min_c=0.0, max_c=37.0, icon="01d")
    assert daily.min_f == 32.0
    assert daily.max_f == pytest.approx(98.6)


def test_bundle_compares_by_value():
    """Lists and tuples of the same entries make equal bundles."""
    place = Place(id="p1", name="Testville", lat=1.0, lon=2.0)
    now = WeatherNow(20.0, "Clear sky", "01d", 60, 5.0, 19.0, 100)
    hourly = [WeatherHourly(dt=100, temp_c=20.0, icon="01d", precip_mm=0.0)]

    from_list = WeatherBundle(now=now, hourly=hourly, daily=[], place=place)
    from_tuple = WeatherBundle(now=now, hourly=tuple(hourly), daily=(), place=place)

    assert from_list == from_tuple
    assert isinstance(from_list.hourly, tuple)
