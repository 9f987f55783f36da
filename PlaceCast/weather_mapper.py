"""
Pure mapping from OpenWeather JSON payloads to domain models.

The output contract the repository relies on:
- temperatures are Celsius (requests are made with units=metric)
- hourly and daily sequences are ascending by dt
- at most HOURLY_LIMIT hourly and DAILY_LIMIT daily entries
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from weather_data import Place, WeatherBundle, WeatherDaily, WeatherHourly, WeatherNow

HOURLY_LIMIT = 8  # 24 hours at 3-hour resolution
DAILY_LIMIT = 7
DEFAULT_ICON = "01d"
MS_TO_KPH = 3.6


def _first_condition(item: Dict[str, Any]) -> Dict[str, Any]:
    conditions = item.get("weather") or []
    return conditions[0] if conditions else {}


def _utc_date(timestamp: int):
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


def _precip_3h(item: Dict[str, Any]) -> float:
    rain = (item.get("rain") or {}).get("3h", 0.0)
    snow = (item.get("snow") or {}).get("3h", 0.0)
    return float(rain) + float(snow)


def map_weather_now(current: Dict[str, Any]) -> WeatherNow:
    main = current.get("main")
    if not main:
        raise KeyError("main")
    condition = _first_condition(current)
    description = condition.get("description") or condition.get("main") or "Unknown"
    wind = current.get("wind") or {}
    return WeatherNow(
        temp_c=float(main["temp"]),
        condition=description[:1].upper() + description[1:],
        icon=condition.get("icon", DEFAULT_ICON),
        humidity=int(main.get("humidity", 0)),
        wind_kph=float(wind.get("speed", 0.0)) * MS_TO_KPH,
        feels_like_c=float(main.get("feels_like", main["temp"])),
        dt=int(current["dt"]),
    )


def _sorted_samples(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda item: int(item["dt"]))


def map_hourly(items: List[Dict[str, Any]]) -> List[WeatherHourly]:
    return [
        WeatherHourly(
            dt=int(item["dt"]),
            temp_c=float(item["main"]["temp"]),
            icon=_first_condition(item).get("icon", DEFAULT_ICON),
            precip_mm=_precip_3h(item),
        )
        for item in _sorted_samples(items)[:HOURLY_LIMIT]
    ]


def map_daily(items: List[Dict[str, Any]]) -> List[WeatherDaily]:
    """Group 3-hour samples into UTC calendar days."""
    days: Dict[Any, List[Dict[str, Any]]] = {}
    for item in _sorted_samples(items):
        days.setdefault(_utc_date(int(item["dt"])), []).append(item)

    daily = []
    for samples in list(days.values())[:DAILY_LIMIT]:
        temps = [float(sample["main"]["temp"]) for sample in samples]
        # The middle sample stands in for the day's condition
        middle = samples[len(samples) // 2]
        daily.append(WeatherDaily(
            dt=int(samples[0]["dt"]),
            min_c=min(temps),
            max_c=max(temps),
            icon=_first_condition(middle).get("icon", DEFAULT_ICON),
        ))
    return daily


def map_place(result: Dict[str, Any]) -> Place:
    """Map a geocoding result to a Place named "name, state, country"."""
    parts = [result["name"]]
    if result.get("state"):
        parts.append(result["state"])
    if result.get("country"):
        parts.append(result["country"])
    return Place.from_coordinates(", ".join(parts), float(result["lat"]), float(result["lon"]))


def map_weather_bundle(current: Dict[str, Any], forecast: Dict[str, Any]) -> WeatherBundle:
    coord = current.get("coord") or {}
    place = Place.from_coordinates(
        current.get("name") or "Unknown",
        float(coord["lat"]),
        float(coord["lon"]),
    )
    samples = forecast.get("list") or []
    return WeatherBundle(
        now=map_weather_now(current),
        hourly=map_hourly(samples),
        daily=map_daily(samples),
        place=place,
    )
