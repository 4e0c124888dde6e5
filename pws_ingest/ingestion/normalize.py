from __future__ import annotations

import datetime as dt
import math
from typing import Any, Dict, List, Mapping, Optional, Set

import structlog

from pws_ingest.errors import MissingKeyError, NormalizationError, ParseError
from .fields import (
    REQUIRED_FIELDS,
    TIMESTAMP_FORMAT,
    UNIT_SECTIONS,
    CanonicalField,
    CanonicalObservation,
    format_decimal,
    map_field,
)

logger = structlog.get_logger()

OBSERVATIONS_KEY = "observations"


class Normalizer:
    """Map provider observation objects onto `CanonicalObservation`.

    Input shape (one element of the provider's ``observations`` array)::

        {
          "stationID": "ISOLIN267",
          "tz": "Europe/Berlin",
          "obsTimeUtc": "2025-05-01T16:39:49Z",
          "obsTimeLocal": "2025-05-01 18:39:49",
          "epoch": 1746117589,
          "humidityAvg": 24.0,
          "qcStatus": -1,
          "metric": {"tempAvg": 28.4, "pressureMax": 1008.47, ...}
        }

    Unknown keys are logged once per key name for the lifetime of the
    normalizer and otherwise skipped, so provider schema additions do not
    stop ingestion.
    """

    def __init__(self, units: str = "m") -> None:
        if units not in UNIT_SECTIONS:
            raise ValueError(f"Unsupported units: {units!r}")
        self.units = units
        self.section = UNIT_SECTIONS[units]
        self._reported: Set[str] = set()

    @property
    def reported_unknown_keys(self) -> Set[str]:
        return set(self._reported)

    def _report_unknown(self, key: str, where: str) -> None:
        tag = f"{where}/{key}"
        if tag in self._reported:
            return
        self._reported.add(tag)
        logger.warning("unknown_field_ignored", key=key, where=where)

    def normalize_payload(self, payload: Mapping[str, Any]) -> List[CanonicalObservation]:
        """Normalize a whole provider response.

        Every observation is normalized before anything is returned, so one
        observation without identity fields rejects the entire batch.
        An absent or empty ``observations`` array yields an empty list.
        """
        if not isinstance(payload, Mapping):
            raise ParseError(f"Expected a JSON object, got {type(payload).__name__}")

        for key in payload:
            if key != OBSERVATIONS_KEY:
                self._report_unknown(key, "response")

        raw = payload.get(OBSERVATIONS_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ParseError(f"'{OBSERVATIONS_KEY}' must be an array")

        records: List[CanonicalObservation] = []
        for index, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise NormalizationError(f"Observation #{index} is not an object")
            records.append(self.normalize(item))
        return records

    def normalize(self, observation: Mapping[str, Any]) -> CanonicalObservation:
        values: Dict[CanonicalField, str] = {}

        for key, value in observation.items():
            if key == self.section:
                if not isinstance(value, Mapping):
                    raise NormalizationError(f"'{self.section}' must be an object")
                for metric_key, metric_value in value.items():
                    self._assign(values, metric_key, metric_value, where=f"observation/{self.section}")
                continue
            self._assign(values, key, value, where="observation")

        missing = [f.value for f in REQUIRED_FIELDS if not values.get(f)]
        if missing:
            raise MissingKeyError(missing)

        observed_at = values.pop(CanonicalField.DATE_TIME)
        try:
            dt.datetime.strptime(observed_at, TIMESTAMP_FORMAT)
        except ValueError as e:
            raise NormalizationError(f"Malformed local observation time: {observed_at!r}") from e

        station_id = values.pop(CanonicalField.STATION_ID)
        timezone = values.pop(CanonicalField.TIMEZONE, None)
        return CanonicalObservation(
            station_id=station_id,
            observed_at=observed_at,
            timezone=timezone,
            metrics=values,
        )

    def _assign(self, values: Dict[CanonicalField, str], key: str, value: Any, where: str) -> None:
        mapping = map_field(key)
        if not mapping.known:
            self._report_unknown(key, where)
            return
        if mapping.ignored or value is None:
            return

        target = mapping.canonical
        if target.is_text:
            values[target] = str(value)
            return

        number = _to_number(value)
        if number is None:
            logger.warning("non_numeric_value_dropped", key=key, value=str(value), where=where)
            return
        values[target] = format_decimal(number)


def _to_number(value: Any) -> Optional[float]:
    # JSON booleans are ints in Python; they are never a reading
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None
