"""Saved places with a single primary designation and a capacity limit."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy import func, select, update

from weather_data import Place
from weather_db import Database, PlaceRow, delete_weather_rows, row_to_place
from weather_errors import CapacityExceededError, PlaceNotFoundError

MAX_PLACES = 10


@dataclass(frozen=True)
class SavedPlace:
    place: Place
    is_primary: bool


class PlaceRegistry:
    """
    Owns the set of saved places.

    Invariants, each held at every commit:
    - at most max_places places
    - exactly one primary place when non-empty
    - ids are unique; adding an existing id updates it in place

    Every mutation is a single transaction, so a concurrent list_places() sees
    either the state before or after it, never zero or two primaries.
    """

    def __init__(self, database: Database, max_places: int = MAX_PLACES, clock: Callable[[], float] = time.time):
        self.database = database
        self.max_places = max_places
        self._clock = clock

    def _ordered(self):
        return select(PlaceRow).order_by(PlaceRow.is_primary.desc(), PlaceRow.seq.asc())

    def list_entries(self) -> List[SavedPlace]:
        with self.database.read() as session:
            rows = session.scalars(self._ordered()).all()
            return [SavedPlace(row_to_place(row), bool(row.is_primary)) for row in rows]

    def list_places(self) -> List[Place]:
        """Saved places, primary first, the rest in insertion order."""
        return [entry.place for entry in self.list_entries()]

    def get(self, place_id: str) -> Optional[Place]:
        with self.database.read() as session:
            row = session.get(PlaceRow, place_id)
            return row_to_place(row) if row is not None else None

    def contains(self, place_id: str) -> bool:
        return self.get(place_id) is not None

    def primary(self) -> Optional[Place]:
        with self.database.read() as session:
            row = session.scalars(select(PlaceRow).where(PlaceRow.is_primary.is_(True))).first()
            return row_to_place(row) if row is not None else None

    def count(self) -> int:
        with self.database.read() as session:
            return session.scalar(select(func.count()).select_from(PlaceRow))

    def add(self, place: Place) -> None:
        """
        Add or update a place.

        The first place added becomes primary. Re-adding an existing id updates
        its name and coordinates but keeps its primary status and position.

        Raises:
            CapacityExceededError: If the registry is full and the id is new
        """
        with self.database.write() as session:
            existing = session.get(PlaceRow, place.id)
            if existing is not None:
                existing.name = place.name
                existing.lat = place.lat
                existing.lon = place.lon
                logging.info(f"Updated place {place.id} ({place.name})")
                return

            count = session.scalar(select(func.count()).select_from(PlaceRow))
            if count >= self.max_places:
                logging.warning(f"Rejected place {place.id}: registry holds {count}/{self.max_places}")
                raise CapacityExceededError(self.max_places)

            self._insert(session, place, primary=count == 0)

    def add_if_empty(self, place: Place) -> bool:
        """Add place as primary only if nothing is saved. Returns True if added."""
        with self.database.write() as session:
            if session.scalar(select(func.count()).select_from(PlaceRow)) > 0:
                return False
            self._insert(session, place, primary=True)
            return True

    def _insert(self, session, place: Place, primary: bool) -> None:
        last_seq = session.scalar(select(func.max(PlaceRow.seq)))
        session.add(PlaceRow(
            id=place.id,
            name=place.name,
            lat=place.lat,
            lon=place.lon,
            is_primary=primary,
            created_at=int(self._clock() * 1000),
            seq=(last_seq or 0) + 1,
        ))
        logging.info(f"Added place {place.id} ({place.name}){' as primary' if primary else ''}")

    def remove(self, place_id: str) -> bool:
        """
        Remove a place and its cached weather.

        Unknown ids are a no-op. If the primary place is removed, the earliest
        inserted remaining place becomes primary.

        Returns:
            True if a place was removed
        """
        with self.database.write() as session:
            row = session.get(PlaceRow, place_id)
            if row is None:
                logging.debug(f"Remove of unknown place {place_id} ignored")
                return False

            was_primary = bool(row.is_primary)
            delete_weather_rows(session, place_id)
            session.delete(row)
            session.flush()

            if was_primary:
                successor = session.scalars(select(PlaceRow).order_by(PlaceRow.seq.asc())).first()
                if successor is not None:
                    successor.is_primary = True
                    logging.info(f"Promoted {successor.id} to primary")
            logging.info(f"Removed place {place_id}")
            return True

    def set_primary(self, place_id: str) -> None:
        """
        Make place_id the only primary place.

        Raises:
            PlaceNotFoundError: If place_id is not registered
        """
        with self.database.write() as session:
            if session.get(PlaceRow, place_id) is None:
                raise PlaceNotFoundError(place_id)
            # One statement flips every row, so there is no intermediate state
            session.execute(
                update(PlaceRow).values(is_primary=(PlaceRow.id == place_id)),
                execution_options={"synchronize_session": False},
            )
            logging.info(f"Primary place is now {place_id}")
