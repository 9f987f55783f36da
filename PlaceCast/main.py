"""Command line client: cached weather for saved places, plus background sync."""
import argparse
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from config import Settings, load_settings
from connectivity import ConnectivityObserverBase, ManualConnectivityObserver, SocketConnectivityObserver
from location_provider import FixedLocationProvider, IpGeoLocationProvider, LocationProviderBase
from openweather_provider import OpenWeatherProvider
from place_registry import PlaceRegistry
from sync_service import SyncService
from weather_cache_store import WeatherCacheStore
from weather_data import Place, WeatherBundle
from weather_db import Database
from weather_errors import (
    CapacityExceededError,
    LocationUnavailableError,
    PlaceNotFoundError,
    SyncCancelledError,
    WeatherProviderError,
)
from weather_repository import WeatherRepository

NETWORK_COMMANDS = {"weather", "search", "add", "here", "sync", "daemon"}

EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_PROVIDER_ERROR = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser("placecast", description="Cached weather for saved places")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--db", default=None, help="Database URL (overrides WEATHER_DB_URL)")
    parser.add_argument("--timeout", type=int, default=None, help="HTTP timeout in seconds")
    parser.add_argument("--offline", action="store_true", help="Treat the network as unreachable when syncing")
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    weather = sub.add_parser("weather", help="Show weather for a saved place (primary by default)")
    weather.add_argument("place_id", nargs="?")
    weather.add_argument("--refresh", action="store_true", help="Bypass the cache")

    sub.add_parser("places", help="List saved places")

    search = sub.add_parser("search", help="Search places by name")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=8)

    add = sub.add_parser("add", help="Search and save a place")
    add.add_argument("query")
    add.add_argument("--index", type=int, default=0, help="Which search result to save")

    remove = sub.add_parser("remove", help="Remove a saved place")
    remove.add_argument("place_id")

    primary = sub.add_parser("primary", help="Make a saved place primary")
    primary.add_argument("place_id")

    sub.add_parser("here", help="Save the current location")

    sync = sub.add_parser("sync", help="Refresh stale places once")
    sync.add_argument("--force", action="store_true", help="Refresh every place")

    daemon = sub.add_parser("daemon", help="Refresh stale places periodically")
    daemon.add_argument("--interval", type=int, default=None, help="Seconds between sync runs")
    return parser.parse_args(argv)


def setup_logging(log_file: Optional[str], verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


@dataclass
class App:
    database: Database
    repository: WeatherRepository
    sync_service: SyncService


def build_location_provider(settings: Settings) -> LocationProviderBase:
    if settings.default_lat is not None and settings.default_lon is not None:
        return FixedLocationProvider(settings.default_lat, settings.default_lon)
    return IpGeoLocationProvider(timeout=settings.timeout)


def build_app(settings: Settings, offline: bool = False) -> App:
    database = Database(settings.database_url)
    database.create_all()

    provider = OpenWeatherProvider(
        api_key=settings.api_key or "",
        lang=settings.lang,
        timeout=settings.timeout,
    )
    connectivity: ConnectivityObserverBase = (
        ManualConnectivityObserver(connected=False) if offline else SocketConnectivityObserver()
    )
    repository = WeatherRepository(
        provider=provider,
        registry=PlaceRegistry(database),
        cache_store=WeatherCacheStore(database),
        location_provider=build_location_provider(settings),
        cache_ttl_seconds=settings.cache_ttl_seconds,
    )
    sync_service = SyncService(repository, connectivity)
    logging.info("Weather client ready (cache ttl=%ss)", settings.cache_ttl_seconds)
    return App(database=database, repository=repository, sync_service=sync_service)


def format_weather_lines(bundle: WeatherBundle) -> List[str]:
    now = bundle.now
    lines = [
        f"{bundle.place.name}: {round(now.temp_c):+d}°C ({round(now.temp_f):+d}°F) {now.condition}",
        f"Feels {round(now.feels_like_c):+d}°C  Hum {now.humidity}%  Wind {now.wind_kph:.1f}km/h",
    ]
    for hour in bundle.hourly:
        stamp = time.strftime("%a %H:%M", time.gmtime(hour.dt))
        lines.append(f"  {stamp} UTC  {hour.temp_c:5.1f}°C  {hour.precip_mm:.1f}mm  {hour.icon}")
    for day in bundle.daily:
        stamp = time.strftime("%a %d %b", time.gmtime(day.dt))
        lines.append(f"  {stamp}  {day.min_c:5.1f} / {day.max_c:5.1f}°C  {day.icon}")
    return lines


def format_place(place: Place, primary: bool = False) -> str:
    marker = "*" if primary else " "
    return f"{marker} {place.id:<22} {place.name} ({place.lat:.4f}, {place.lon:.4f})"


def resolve_place(repository: WeatherRepository, place_id: Optional[str]) -> Place:
    if place_id is None:
        place = repository.primary_place()
        if place is None:
            raise PlaceNotFoundError("<primary>")
        return place
    place = repository.registry.get(place_id)
    if place is None:
        raise PlaceNotFoundError(place_id)
    return place


def run_daemon(app: App, interval: int) -> None:
    stop_event = threading.Event()

    def signal_handler(signum, frame):
        logging.info("Received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    app.sync_service.run_forever(interval, stop_event)


def run_command(app: App, args: argparse.Namespace, settings: Settings) -> int:
    repository = app.repository
    command = args.command

    if command == "weather":
        place = resolve_place(repository, args.place_id)
        bundle = repository.weather_for(place, force_refresh=args.refresh)
        print("\n".join(format_weather_lines(bundle)))
    elif command == "places":
        entries = repository.registry.list_entries()
        if not entries:
            print("No saved places")
        for entry in entries:
            print(format_place(entry.place, entry.is_primary))
    elif command == "search":
        for index, place in enumerate(repository.search_places(args.query, args.limit)):
            print(f"[{index}] {format_place(place)}")
    elif command == "add":
        results = repository.search_places(args.query)
        if not 0 <= args.index < len(results):
            logging.error("No search result at index %s (%s results)", args.index, len(results))
            return EXIT_USER_ERROR
        repository.add_place(results[args.index])
        print(f"Saved {results[args.index].name}")
    elif command == "remove":
        if not repository.remove_place(args.place_id):
            logging.warning("No saved place %s", args.place_id)
    elif command == "primary":
        repository.set_primary(args.place_id)
    elif command == "here":
        place = repository.current_location_place()
        repository.add_place(place)
        print(f"Saved {format_place(place)}")
    elif command == "sync":
        print(app.sync_service.sync_all(force_refresh=args.force))
    elif command == "daemon":
        run_daemon(app, args.interval or settings.sync_interval_seconds)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)
    settings = load_settings()
    if args.db:
        settings.database_url = args.db
    if args.timeout:
        settings.timeout = args.timeout
    if args.command in NETWORK_COMMANDS:
        settings.require_api_key()

    app = build_app(settings, offline=args.offline)
    try:
        default_place = settings.default_place()
        if default_place is not None:
            app.repository.ensure_default_place(default_place)
        return run_command(app, args, settings)
    except WeatherProviderError as err:
        logging.error("Weather provider error (%s): %s", err.kind.name, err)
        return EXIT_PROVIDER_ERROR
    except (CapacityExceededError, PlaceNotFoundError, LocationUnavailableError) as err:
        logging.error("%s", err)
        return EXIT_USER_ERROR
    except (KeyboardInterrupt, SyncCancelledError):
        logging.info("Stopping")
        return EXIT_OK
    finally:
        app.database.dispose()


if __name__ == "__main__":
    sys.exit(main())
