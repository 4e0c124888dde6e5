from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import pandas as pd
import structlog
from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pws_ingest.errors import DuplicateObservationError, StorageError, StorageOpenError
from .fields import CanonicalField, CanonicalObservation, format_decimal
from .models import METRIC_COLUMNS, Observation, create_tables

logger = structlog.get_logger()

STATS_COLUMNS = ["station_id", "rows", "first_observation", "last_observation"]


def _to_url(location: str) -> str:
    if "://" in location:
        return location
    path = Path(location).expanduser()
    if path.is_dir():
        raise StorageOpenError(f"Database location is a directory: {path}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageOpenError(f"Could not create database directory {path.parent}: {e}") from e
    return f"sqlite:///{path}"


def _to_record(obs: Observation) -> CanonicalObservation:
    metrics: Dict[CanonicalField, str] = {}
    for column in METRIC_COLUMNS:
        value = getattr(obs, column)
        if value is not None:
            metrics[CanonicalField(column)] = format_decimal(value)
    return CanonicalObservation(
        station_id=obs.station_id,
        observed_at=obs.date_time,
        timezone=obs.timezone,
        metrics=metrics,
    )


class ObservationStore:
    """Durable observation store over a single ``wu_data`` table.

    The composite primary key on (station_id, date_time) rejects a second
    insert of the same natural key, which keeps the table consistent even
    when the in-memory deduplication index lags behind after a crash.
    """

    def __init__(self, engine: Engine, location: str = "") -> None:
        self._engine = engine
        self.location = location or str(engine.url)

    @classmethod
    def open(cls, location: str) -> "ObservationStore":
        """Open a store at a filesystem path (SQLite) or SQLAlchemy URL.

        Creates the schema when the target is new; an existing table is used
        as-is. Raises `StorageOpenError` when the target cannot be read.
        """
        if not location:
            raise StorageOpenError("No database location specified")
        url = _to_url(location)
        try:
            engine = create_engine(url, future=True)
            create_tables(engine)
            with Session(engine) as session:
                total = session.execute(select(func.count()).select_from(Observation)).scalar_one()
        except SQLAlchemyError as e:
            raise StorageOpenError(f"Could not open {location}: {e}") from e
        logger.info("store_opened", location=location, rows=int(total))
        return cls(engine, location)

    def close(self) -> None:
        self._engine.dispose()

    def insert(self, record: CanonicalObservation) -> None:
        """Append one observation.

        Raises
        ------
        DuplicateObservationError
            The natural key is already stored.
        StorageError
            Any other database failure.
        """
        row = {
            "station_id": record.station_id,
            "date_time": record.observed_at,
            "timezone": record.timezone,
        }
        for f, value in record.metrics.items():
            row[f.value] = float(value)

        with Session(self._engine) as session:
            try:
                session.add(Observation(**row))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateObservationError(
                    f"Observation {record.station_id} at {record.observed_at} already stored"
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(
                    f"Could not store observation {record.station_id} at {record.observed_at}: {e}"
                ) from e

    def scan(self, batch_size: int = 1000) -> Iterator[CanonicalObservation]:
        """Stream every stored observation, ordered by station and time.

        The iterator holds a session open until it is exhausted; to scan
        again, call `scan` again.
        """
        stmt = (
            select(Observation)
            .order_by(Observation.station_id, Observation.date_time)
            .execution_options(yield_per=batch_size)
        )
        try:
            with Session(self._engine) as session:
                for obs in session.scalars(stmt):
                    yield _to_record(obs)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not scan {self.location}: {e}") from e

    def count(self) -> int:
        with Session(self._engine) as session:
            return int(session.execute(select(func.count()).select_from(Observation)).scalar_one())

    def read_day(self, station_id: str, day: dt.date) -> pd.DataFrame:
        """Read one local calendar day for a station.

        Returns
        -------
        pandas.DataFrame
            Indexed by the naive provider-local timestamp, with `timezone`
            and one float column per metric (NaN when not reported).
        """
        start = day.strftime("%Y-%m-%d") + " 00:00:00"
        end = day.strftime("%Y-%m-%d") + " 23:59:59"
        stmt = (
            select(Observation)
            .where(Observation.station_id == station_id)
            .where(Observation.date_time >= start)
            .where(Observation.date_time <= end)
            .order_by(Observation.date_time)
        )
        try:
            with Session(self._engine) as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read {day.isoformat()} from {self.location}: {e}") from e

        columns = ["timezone", *METRIC_COLUMNS]
        if not rows:
            return pd.DataFrame(columns=columns).set_index(pd.DatetimeIndex([], name="date_time"))

        index = pd.DatetimeIndex(pd.to_datetime([r.date_time for r in rows]), name="date_time")
        data = {column: [getattr(r, column) for r in rows] for column in columns}
        df = pd.DataFrame(data, index=index)
        df[list(METRIC_COLUMNS)] = df[list(METRIC_COLUMNS)].astype(float)
        return df

    def stats(self, station_id: Optional[str] = None) -> Tuple[int, pd.DataFrame]:
        """Return total observation count and per-station coverage."""
        with Session(self._engine) as session:
            stats_stmt = select(
                Observation.station_id.label("station_id"),
                func.count().label("rows"),
                func.min(Observation.date_time).label("first_observation"),
                func.max(Observation.date_time).label("last_observation"),
            ).select_from(Observation)
            if station_id is not None:
                stats_stmt = stats_stmt.where(Observation.station_id == station_id)
            stats_stmt = stats_stmt.group_by(Observation.station_id).order_by(Observation.station_id)
            rows = session.execute(stats_stmt).all()

        df = pd.DataFrame(rows, columns=STATS_COLUMNS)
        total = int(df["rows"].sum()) if not df.empty else 0
        return total, df
