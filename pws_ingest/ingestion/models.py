from __future__ import annotations

from typing import Optional

from sqlalchemy import Float, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .fields import NUMERIC_FIELDS


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for ingestion models."""


class Observation(Base):
    """One station observation as stored in ``wu_data``.

    Composite primary key: (station_id, date_time), where `date_time` is the
    provider-local ``YYYY-MM-DD HH:MM:SS`` text. Metric columns are nullable
    floats named after `CanonicalField`; NULL means the provider did not
    report the value. Units:
    - *_c: Celsius
    - *_percent: percent (0-100)
    - *_kmh: kilometres per hour
    - *_hpa: hectopascals
    - *_mm: millimetres (rate: mm/h)
    """

    __tablename__ = "wu_data"

    station_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    date_time: Mapped[str] = mapped_column(String(19), primary_key=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    solar_radiation_high: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    uv_high: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_direction_avg_degree: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    humidity_high_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    humidity_low_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    humidity_avg_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_high_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_low_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_avg_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    windspeed_high_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    windspeed_low_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    windspeed_avg_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_gust_high_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_gust_low_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_gust_avg_kmh: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dew_point_high_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dew_point_low_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dew_point_avg_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_chill_high_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_chill_low_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wind_chill_avg_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    heat_index_high_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    heat_index_low_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    heat_index_avg_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pressure_max_hpa: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pressure_min_hpa: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pressure_trend_hpa: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    precipitation_rate_mm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    precipitation_total_mm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


METRIC_COLUMNS = tuple(f.value for f in NUMERIC_FIELDS)


def create_tables(engine) -> None:
    """Create all ingestion tables if they do not exist.

    Parameters
    ----------
    engine : sqlalchemy.Engine
        SQLAlchemy engine for the target database.
    """
    Base.metadata.create_all(bind=engine)
