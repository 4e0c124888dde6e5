from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional


class CanonicalField(str, enum.Enum):
    """Closed set of canonical observation fields.

    The enum value is the column name used in the `wu_data` table. Units are
    part of the name because the engine always requests metric data.
    """

    STATION_ID = "station_id"
    TIMEZONE = "timezone"
    DATE_TIME = "date_time"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    SOLAR_RADIATION_HIGH = "solar_radiation_high"
    UV_HIGH = "uv_high"
    WIND_DIRECTION_AVG_DEGREE = "wind_direction_avg_degree"
    HUMIDITY_HIGH_PERCENT = "humidity_high_percent"
    HUMIDITY_LOW_PERCENT = "humidity_low_percent"
    HUMIDITY_AVG_PERCENT = "humidity_avg_percent"
    TEMPERATURE_HIGH_C = "temperature_high_c"
    TEMPERATURE_LOW_C = "temperature_low_c"
    TEMPERATURE_AVG_C = "temperature_avg_c"
    WINDSPEED_HIGH_KMH = "windspeed_high_kmh"
    WINDSPEED_LOW_KMH = "windspeed_low_kmh"
    WINDSPEED_AVG_KMH = "windspeed_avg_kmh"
    WIND_GUST_HIGH_KMH = "wind_gust_high_kmh"
    WIND_GUST_LOW_KMH = "wind_gust_low_kmh"
    WIND_GUST_AVG_KMH = "wind_gust_avg_kmh"
    DEW_POINT_HIGH_C = "dew_point_high_c"
    DEW_POINT_LOW_C = "dew_point_low_c"
    DEW_POINT_AVG_C = "dew_point_avg_c"
    WIND_CHILL_HIGH_C = "wind_chill_high_c"
    WIND_CHILL_LOW_C = "wind_chill_low_c"
    WIND_CHILL_AVG_C = "wind_chill_avg_c"
    HEAT_INDEX_HIGH_C = "heat_index_high_c"
    HEAT_INDEX_LOW_C = "heat_index_low_c"
    HEAT_INDEX_AVG_C = "heat_index_avg_c"
    PRESSURE_MAX_HPA = "pressure_max_hpa"
    PRESSURE_MIN_HPA = "pressure_min_hpa"
    PRESSURE_TREND_HPA = "pressure_trend_hpa"
    PRECIPITATION_RATE_MM = "precipitation_rate_mm"
    PRECIPITATION_TOTAL_MM = "precipitation_total_mm"

    @property
    def is_text(self) -> bool:
        return self in TEXT_FIELDS


TEXT_FIELDS = frozenset({CanonicalField.STATION_ID, CanonicalField.TIMEZONE, CanonicalField.DATE_TIME})
NUMERIC_FIELDS = tuple(f for f in CanonicalField if f not in TEXT_FIELDS)
REQUIRED_FIELDS = (CanonicalField.STATION_ID, CanonicalField.DATE_TIME)

# Provider key -> canonical field; None marks keys with no canonical home.
FIELD_MAP: Dict[str, Optional[CanonicalField]] = {
    "stationID": CanonicalField.STATION_ID,
    "tz": CanonicalField.TIMEZONE,
    "obsTimeLocal": CanonicalField.DATE_TIME,
    "obsTimeUtc": None,
    "epoch": None,
    "qcStatus": None,
    "lat": CanonicalField.LATITUDE,
    "lon": CanonicalField.LONGITUDE,
    "solarRadiationHigh": CanonicalField.SOLAR_RADIATION_HIGH,
    "uvHigh": CanonicalField.UV_HIGH,
    "winddirAvg": CanonicalField.WIND_DIRECTION_AVG_DEGREE,
    "humidityHigh": CanonicalField.HUMIDITY_HIGH_PERCENT,
    "humidityLow": CanonicalField.HUMIDITY_LOW_PERCENT,
    "humidityAvg": CanonicalField.HUMIDITY_AVG_PERCENT,
    # metric section
    "tempHigh": CanonicalField.TEMPERATURE_HIGH_C,
    "tempLow": CanonicalField.TEMPERATURE_LOW_C,
    "tempAvg": CanonicalField.TEMPERATURE_AVG_C,
    "windspeedHigh": CanonicalField.WINDSPEED_HIGH_KMH,
    "windspeedLow": CanonicalField.WINDSPEED_LOW_KMH,
    "windspeedAvg": CanonicalField.WINDSPEED_AVG_KMH,
    "windgustHigh": CanonicalField.WIND_GUST_HIGH_KMH,
    "windgustLow": CanonicalField.WIND_GUST_LOW_KMH,
    "windgustAvg": CanonicalField.WIND_GUST_AVG_KMH,
    "dewptHigh": CanonicalField.DEW_POINT_HIGH_C,
    "dewptLow": CanonicalField.DEW_POINT_LOW_C,
    "dewptAvg": CanonicalField.DEW_POINT_AVG_C,
    "windchillHigh": CanonicalField.WIND_CHILL_HIGH_C,
    "windchillLow": CanonicalField.WIND_CHILL_LOW_C,
    "windchillAvg": CanonicalField.WIND_CHILL_AVG_C,
    "heatindexHigh": CanonicalField.HEAT_INDEX_HIGH_C,
    "heatindexLow": CanonicalField.HEAT_INDEX_LOW_C,
    "heatindexAvg": CanonicalField.HEAT_INDEX_AVG_C,
    "pressureMax": CanonicalField.PRESSURE_MAX_HPA,
    "pressureMin": CanonicalField.PRESSURE_MIN_HPA,
    "pressureTrend": CanonicalField.PRESSURE_TREND_HPA,
    "precipRate": CanonicalField.PRECIPITATION_RATE_MM,
    "precipTotal": CanonicalField.PRECIPITATION_TOTAL_MM,
}

# Nested object carrying unit-bearing fields, keyed by the `units` query value
UNIT_SECTIONS: Dict[str, str] = {"m": "metric"}

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class FieldMapping:
    canonical: Optional[CanonicalField]
    ignored: bool
    known: bool


def map_field(provider_key: str) -> FieldMapping:
    """Resolve a provider key to its canonical field.

    Unknown keys come back with ``known=False`` so the caller can report them
    and carry on with the rest of the record.
    """
    if provider_key not in FIELD_MAP:
        return FieldMapping(canonical=None, ignored=False, known=False)
    canonical = FIELD_MAP[provider_key]
    return FieldMapping(canonical=canonical, ignored=canonical is None, known=True)


def format_decimal(value: float) -> str:
    """One-decimal text form used for every stored metric."""
    text = f"{float(value):.1f}"
    # -0.0 and 0.0 are the same reading
    return "0.0" if text == "-0.0" else text


@dataclass(frozen=True)
class CanonicalObservation:
    """One reading for one station at one provider-local timestamp.

    `observed_at` keeps the provider's local wall-clock text
    (``YYYY-MM-DD HH:MM:SS``) and is not converted to UTC; together with
    `station_id` it is the natural key. Metrics that the provider did not
    send are absent from `metrics` rather than zero.
    """

    station_id: str
    observed_at: str
    timezone: Optional[str] = None
    metrics: Dict[CanonicalField, str] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.station_id, self.observed_at)

    @property
    def day(self) -> str:
        return self.observed_at[:10]

    @property
    def time_of_day(self) -> str:
        return self.observed_at[11:]

    def as_row(self) -> Dict[str, Optional[str]]:
        row: Dict[str, Optional[str]] = {
            CanonicalField.STATION_ID.value: self.station_id,
            CanonicalField.TIMEZONE.value: self.timezone,
            CanonicalField.DATE_TIME.value: self.observed_at,
        }
        for f, value in self.metrics.items():
            row[f.value] = value
        return row
