"""Shared builders for provider payloads, fake fetchers and temporary stores."""

from __future__ import annotations

import copy
import datetime as dt
import os
from typing import Any, Dict, List, Optional, Union

from pws_ingest.ingestion.storage import ObservationStore

API_KEY = "a0" * 16


def make_observation(
    station_id: Optional[str] = "XY123",
    local: Optional[str] = "2025-05-01 18:39:49",
    **extra: Any,
) -> Dict[str, Any]:
    """One provider observation, shaped like a real PWS history element."""
    obs: Dict[str, Any] = {
        "tz": "Europe/Berlin",
        "obsTimeUtc": "2025-05-01T16:39:49Z",
        "epoch": 1746117589,
        "lat": 51.129,
        "lon": 7.153,
        "solarRadiationHigh": 167.2,
        "uvHigh": 1.5,
        "winddirAvg": 112,
        "humidityHigh": 26.0,
        "humidityLow": 23.0,
        "humidityAvg": 24.0,
        "qcStatus": -1,
        "metric": {
            "tempHigh": 28.7,
            "tempLow": 28.2,
            "tempAvg": 28.4,
            "windspeedHigh": 6.1,
            "windspeedLow": 0.0,
            "windspeedAvg": 2.5,
            "windgustHigh": 6.1,
            "windgustLow": 0.0,
            "windgustAvg": 2.5,
            "dewptHigh": 7.3,
            "dewptLow": 5.3,
            "dewptAvg": 6.0,
            "windchillHigh": 28.7,
            "windchillLow": 28.2,
            "windchillAvg": 28.4,
            "heatindexHigh": 27.3,
            "heatindexLow": 27.0,
            "heatindexAvg": 27.1,
            "pressureMax": 1008.47,
            "pressureMin": 1008.47,
            "pressureTrend": 0.00,
            "precipRate": 0.00,
            "precipTotal": 0.81,
        },
    }
    if station_id is not None:
        obs["stationID"] = station_id
    if local is not None:
        obs["obsTimeLocal"] = local
    obs.update(extra)
    return obs


def make_payload(*observations: Dict[str, Any]) -> Dict[str, Any]:
    return {"observations": list(observations)}


def day_payload(day: str, times: List[str], station_id: str = "XY123") -> Dict[str, Any]:
    return make_payload(*(make_observation(station_id, f"{day} {t}") for t in times))


Response = Union[Dict[str, Any], Exception]


class FakeFetcher:
    """In-memory stand-in for the provider client, keyed by date."""

    def __init__(self, responses: Optional[Dict[dt.date, Response]] = None) -> None:
        self.responses: Dict[dt.date, Response] = dict(responses or {})
        self.calls: List[dt.date] = []

    def fetch_day(self, station_id: str, day: dt.date) -> Dict[str, Any]:
        self.calls.append(day)
        response = self.responses.get(day, {"observations": []})
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


def open_store(directory: str, name: str = "wu.sqlite") -> ObservationStore:
    return ObservationStore.open(os.path.join(directory, name))
