"""
SQLite persistence for places and cached weather.

Tables:
- places: saved places, one of them primary
- weather_now / weather_hourly / weather_daily: the cached bundle of a place,
  split by cadence, deleted with the owning place (ON DELETE CASCADE)

The Database handle is constructed by the composition root and passed to the
registry and cache store. Reads run inside a transaction so that the several
SELECTs that rebuild one bundle see a single snapshot. Writes are serialized
through the handle because SQLite allows one writer per file anyway.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Sequence, Tuple

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
    delete,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from weather_data import Place, WeatherBundle, WeatherDaily, WeatherHourly, WeatherNow

DEFAULT_DATABASE_URL = "sqlite:///placecast.db"


class Base(DeclarativeBase):
    pass


class PlaceRow(Base):
    __tablename__ = "places"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(BigInteger, nullable=False)  # epoch millis
    seq = Column(Integer, nullable=False, index=True)  # insertion order, stable across upserts


class WeatherNowRow(Base):
    __tablename__ = "weather_now"

    place_id = Column(String, ForeignKey("places.id", ondelete="CASCADE"), primary_key=True)
    temp_c = Column(Float, nullable=False)
    condition = Column(String, nullable=False)
    icon = Column(String, nullable=False)
    humidity = Column(Integer, nullable=False)
    wind_kph = Column(Float, nullable=False)
    feels_like_c = Column(Float, nullable=False)
    dt = Column(BigInteger, nullable=False)
    cached_at = Column(BigInteger, nullable=False)


class WeatherHourlyRow(Base):
    __tablename__ = "weather_hourly"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(String, ForeignKey("places.id", ondelete="CASCADE"), nullable=False)
    dt = Column(BigInteger, nullable=False)
    temp_c = Column(Float, nullable=False)
    icon = Column(String, nullable=False)
    precip_mm = Column(Float, nullable=False)
    cached_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_weather_hourly_place_dt", "place_id", "dt"),
    )


class WeatherDailyRow(Base):
    __tablename__ = "weather_daily"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(String, ForeignKey("places.id", ondelete="CASCADE"), nullable=False)
    dt = Column(BigInteger, nullable=False)
    min_c = Column(Float, nullable=False)
    max_c = Column(Float, nullable=False)
    icon = Column(String, nullable=False)
    cached_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_weather_daily_place_dt", "place_id", "dt"),
    )


def _configure_sqlite(engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy so SELECTs run inside BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Engine, session factory and write lock for one database."""

    def __init__(self, url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        self.url = url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self._write_lock = threading.Lock()

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        logging.debug(f"Schema ready at {self.engine.url}")

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Session for a consistent multi-statement read."""
        with self.SessionLocal() as session, session.begin():
            yield session

    @contextmanager
    def write(self) -> Iterator[Session]:
        """Session whose statements commit together, or not at all."""
        with self._write_lock:
            with self.SessionLocal() as session, session.begin():
                yield session

    def dispose(self) -> None:
        self.engine.dispose()


# Row <-> domain mapping -----------------------------------------------------

def row_to_place(row: PlaceRow) -> Place:
    return Place(id=row.id, name=row.name, lat=row.lat, lon=row.lon)


def bundle_to_rows(
    bundle: WeatherBundle, place_id: str, cached_at: int
) -> Tuple[WeatherNowRow, List[WeatherHourlyRow], List[WeatherDailyRow]]:
    now = bundle.now
    now_row = WeatherNowRow(
        place_id=place_id,
        temp_c=now.temp_c,
        condition=now.condition,
        icon=now.icon,
        humidity=now.humidity,
        wind_kph=now.wind_kph,
        feels_like_c=now.feels_like_c,
        dt=now.dt,
        cached_at=cached_at,
    )
    hourly_rows = [
        WeatherHourlyRow(
            place_id=place_id, dt=h.dt, temp_c=h.temp_c, icon=h.icon, precip_mm=h.precip_mm, cached_at=cached_at
        )
        for h in bundle.hourly
    ]
    daily_rows = [
        WeatherDailyRow(place_id=place_id, dt=d.dt, min_c=d.min_c, max_c=d.max_c, icon=d.icon, cached_at=cached_at)
        for d in bundle.daily
    ]
    return now_row, hourly_rows, daily_rows


def rows_to_bundle(
    place_row: PlaceRow,
    now_row: WeatherNowRow,
    hourly_rows: Sequence[WeatherHourlyRow],
    daily_rows: Sequence[WeatherDailyRow],
) -> WeatherBundle:
    return WeatherBundle(
        now=WeatherNow(
            temp_c=now_row.temp_c,
            condition=now_row.condition,
            icon=now_row.icon,
            humidity=now_row.humidity,
            wind_kph=now_row.wind_kph,
            feels_like_c=now_row.feels_like_c,
            dt=now_row.dt,
        ),
        hourly=[WeatherHourly(dt=r.dt, temp_c=r.temp_c, icon=r.icon, precip_mm=r.precip_mm) for r in hourly_rows],
        daily=[WeatherDaily(dt=r.dt, min_c=r.min_c, max_c=r.max_c, icon=r.icon) for r in daily_rows],
        place=row_to_place(place_row),
    )


def delete_weather_rows(session: Session, place_id: str) -> None:
    """Delete the cached now/hourly/daily rows of a place within the caller's transaction."""
    session.execute(delete(WeatherNowRow).where(WeatherNowRow.place_id == place_id))
    session.execute(delete(WeatherHourlyRow).where(WeatherHourlyRow.place_id == place_id))
    session.execute(delete(WeatherDailyRow).where(WeatherDailyRow.place_id == place_id))
