"""Background reconciliation of cached weather for every saved place."""
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from connectivity import ConnectivityObserverBase
from weather_data import Place, WeatherBundle
from weather_errors import SyncCancelledError, WeatherProviderError
from weather_repository import CacheState, WeatherRepository

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0
SYNC_INTERVAL_SECONDS = 15 * 60
OFFLINE_PROBE_SECONDS = 30


class SyncState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class SyncStatus(Enum):
    OFFLINE = "offline"
    NO_PLACES = "no_places"
    READY = "ready"


# Outcome of a whole sync run

class SyncResult:
    pass


@dataclass(frozen=True)
class NoNetwork(SyncResult):
    pass


@dataclass(frozen=True)
class NoPlaces(SyncResult):
    pass


@dataclass(frozen=True)
class NoDataToSync(SyncResult):
    pass


@dataclass(frozen=True)
class SyncSuccess(SyncResult):
    synced_count: int


@dataclass(frozen=True)
class PartialSuccess(SyncResult):
    success_count: int
    failure_count: int


@dataclass(frozen=True)
class SyncFailure(SyncResult):
    message: str


# Outcome for one place

class PlaceSyncResult:
    pass


@dataclass(frozen=True)
class PlaceSynced(PlaceSyncResult):
    place_id: str
    bundle: WeatherBundle


@dataclass(frozen=True)
class PlaceSyncFailed(PlaceSyncResult):
    place_id: str
    message: str
    error: Optional[Exception] = None


@dataclass(frozen=True)
class PlaceSkipped(PlaceSyncResult):
    place_id: str
    reason: str


class SyncService:
    """
    Refreshes stale places through the repository, with bounded retry.

    Domain failures never escape sync_all()/sync_place(): they are folded into
    the returned result. Only cancellation (SyncCancelledError) and programmer
    errors propagate.

    Runs do not overlap: a sync_all() started while another is in progress
    waits for it, so state and last_result always describe one run.
    """

    def __init__(
        self,
        repository: WeatherRepository,
        connectivity: ConnectivityObserverBase,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        stop_on_non_retryable: bool = False,
    ):
        """
        Initialize sync service.

        Args:
            repository: Repository whose forced refresh performs each fetch
            connectivity: Gate for whole runs and single places
            max_attempts: Fetch attempts per place
            retry_delay_seconds: Base delay; attempt n is followed by n * base
            sleep: Blocking wait between attempts
            stop_on_non_retryable: Give up at once on invalid credentials or
                unknown locations instead of spending every attempt
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.repository = repository
        self.connectivity = connectivity
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self.stop_on_non_retryable = stop_on_non_retryable
        self._run_lock = threading.Lock()
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()
        self.last_result: Optional[SyncResult] = None

    @property
    def state(self) -> SyncState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SyncState) -> None:
        with self._state_lock:
            self._state = state

    def sync_status(self) -> SyncStatus:
        if not self.connectivity.is_connected():
            return SyncStatus.OFFLINE
        if not self.repository.saved_places():
            return SyncStatus.NO_PLACES
        return SyncStatus.READY

    def sync_all(
        self,
        force_refresh: bool = False,
        force_place_ids: Iterable[str] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        """
        Refresh every saved place whose cache is stale or absent.

        Args:
            force_refresh: Refresh every place regardless of cache age
            force_place_ids: Refresh these places regardless of cache age
            cancel_event: Checked before each place and between attempts

        Raises:
            SyncCancelledError: If cancel_event was set during the run
        """
        with self._run_lock:
            if not self.connectivity.is_connected():
                logging.info("Sync skipped: no network")
                return self._finish(NoNetwork())

            places = self.repository.saved_places()
            if not places:
                logging.info("Sync skipped: no saved places")
                return self._finish(NoPlaces())

            self._set_state(SyncState.RUNNING)
            forced = set(force_place_ids)
            results: List[PlaceSyncResult] = []
            try:
                for place in places:
                    self._check_cancelled(cancel_event)
                    results.append(
                        self.sync_place(place, force_refresh or place.id in forced, cancel_event=cancel_event)
                    )
            except SyncCancelledError:
                logging.warning(f"Sync cancelled after {len(results)}/{len(places)} places")
                self._set_state(SyncState.ABORTED)
                raise

            return self._finish(self._aggregate(results))

    def _finish(self, result: SyncResult) -> SyncResult:
        self.last_result = result
        self._set_state(SyncState.COMPLETED)
        logging.info(f"Sync finished: {result}")
        return result

    @staticmethod
    def _aggregate(results: List[PlaceSyncResult]) -> SyncResult:
        success_count = sum(1 for r in results if isinstance(r, PlaceSynced))
        failure_count = sum(1 for r in results if isinstance(r, PlaceSyncFailed))
        if success_count and not failure_count:
            return SyncSuccess(success_count)
        if success_count and failure_count:
            return PartialSuccess(success_count, failure_count)
        if failure_count:
            return SyncFailure(f"Failed to sync {failure_count} places")
        return NoDataToSync()

    def sync_place(
        self, place: Place, force_refresh: bool = False, cancel_event: Optional[threading.Event] = None
    ) -> PlaceSyncResult:
        """
        Refresh one place if it is stale (or forced).

        Raises:
            SyncCancelledError: If cancel_event was set between attempts
        """
        if not self.connectivity.is_connected():
            return PlaceSyncFailed(place.id, "No network connection")

        state = self.repository.cache_state(place.id, force_refresh)
        if state is CacheState.FRESH:
            logging.debug(f"Skipping {place.id}: data is still fresh")
            return PlaceSkipped(place.id, "Data is still fresh")

        try:
            bundle = self.fetch_with_retry(place, cancel_event)
        except WeatherProviderError as e:
            logging.error(f"Failed to sync {place.name}: {e}")
            return PlaceSyncFailed(place.id, f"Failed to sync {place.name}: {e}", e)
        return PlaceSynced(place.id, bundle)

    def fetch_with_retry(self, place: Place, cancel_event: Optional[threading.Event] = None) -> WeatherBundle:
        """
        Force-refresh a place through the repository, retrying transient failures.

        Attempt n failing waits n * retry_delay_seconds before the next attempt.
        Every failure kind is retried unless stop_on_non_retryable is set, in
        which case invalid credentials and unknown locations end the loop.

        Raises:
            WeatherProviderError: After the last attempt, chained to its cause
            SyncCancelledError: If cancel_event is set before an attempt
        """
        last_error: Optional[WeatherProviderError] = None
        attempts = 0
        for attempt in range(1, self.max_attempts + 1):
            self._check_cancelled(cancel_event)
            attempts = attempt
            try:
                logging.debug(f"Weather fetch attempt {attempt}/{self.max_attempts} for {place.id}")
                return self.repository.weather_for(place, force_refresh=True)
            except WeatherProviderError as e:
                last_error = e
                logging.warning(f"Weather fetch attempt {attempt} for {place.id} failed: {e}")
                if self.stop_on_non_retryable and not e.retryable:
                    logging.error(f"Non-retryable error ({e.kind.name}), stopping retries")
                    break
                if attempt < self.max_attempts:
                    retry_delay = self.retry_delay_seconds * attempt
                    logging.info(f"Retrying in {retry_delay}s...")
                    self._sleep(retry_delay)

        raise WeatherProviderError(
            last_error.kind,
            f"Failed to fetch weather after {attempts} attempts: {last_error}",
        ) from last_error

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SyncCancelledError("Sync cancelled")

    def run_forever(
        self, interval_seconds: float = SYNC_INTERVAL_SECONDS, stop_event: Optional[threading.Event] = None
    ) -> None:
        """
        Sync every interval_seconds until stop_event is set.

        A connectivity change back to online triggers a sync straight away.
        """
        stop_event = stop_event or threading.Event()
        wake = threading.Event()

        def on_connectivity(connected: bool) -> None:
            if connected:
                wake.set()

        unsubscribe = self.connectivity.subscribe(on_connectivity)
        logging.info(f"Background sync every {interval_seconds}s")
        try:
            while not stop_event.is_set():
                wake.clear()
                try:
                    self.sync_all(cancel_event=stop_event)
                except SyncCancelledError:
                    break
                self._wait_for_next_run(interval_seconds, stop_event, wake)
        finally:
            unsubscribe()
            logging.info("Background sync stopped")

    def _wait_for_next_run(self, interval_seconds: float, stop_event: threading.Event, wake: threading.Event) -> None:
        deadline = time.monotonic() + interval_seconds
        offline = isinstance(self.last_result, NoNetwork)
        next_probe = time.monotonic() + OFFLINE_PROBE_SECONDS
        while not stop_event.is_set() and not wake.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            stop_event.wait(min(remaining, 1.0))
            if offline and time.monotonic() >= next_probe:
                # A change back to online is published to on_connectivity, which sets wake
                self.connectivity.is_connected()
                next_probe = time.monotonic() + OFFLINE_PROBE_SECONDS
