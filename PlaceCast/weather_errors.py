"""Error taxonomy shared by providers, stores, the repository and the sync service."""
from enum import Enum
from typing import Optional


class WeatherError(Exception):
    """Base class for all domain errors."""
    pass


class ProviderErrorKind(Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NO_CONNECTIVITY = "no_connectivity"
    UNKNOWN = "unknown"


# Retrying these cannot change the outcome
NON_RETRYABLE_KINDS = frozenset({ProviderErrorKind.INVALID_CREDENTIAL, ProviderErrorKind.NOT_FOUND})


class WeatherProviderError(WeatherError):
    """Raised when a weather provider fails to fetch or search."""

    def __init__(self, kind: ProviderErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"WeatherProviderError({self.kind.name}, {str(self)!r})"


class CapacityExceededError(WeatherError):
    """Raised when adding a place to a full registry."""

    def __init__(self, max_places: int):
        super().__init__(f"Cannot add more than {max_places} places")
        self.max_places = max_places


class PlaceNotFoundError(WeatherError):
    def __init__(self, place_id: str):
        super().__init__(f"Place not found: {place_id}")
        self.place_id = place_id


class LocationUnavailableError(WeatherError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Location services unavailable")


class SyncCancelledError(WeatherError):
    """Raised when a sync run is cancelled between attempts."""
    pass
