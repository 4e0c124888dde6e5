from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Protocol
import datetime as dt

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from pws_ingest.errors import NetworkError, ParseError


class ObservationFetcher(Protocol):
    """Provider-agnostic fetcher of one day of station observations.

    Implementations return the decoded provider document,
    ``{"observations": [...]}``, and raise `NetworkError` or `ParseError`.
    Calls are blocking; the coordinator runs them off the event loop.
    """

    def fetch_day(self, station_id: str, day: dt.date) -> Dict[str, Any]:
        ...


@dataclass
class WundergroundClient:
    """Weather Underground PWS history client.

    Notes and assumptions:
    - Requests metric units with decimal precision for one local calendar day.
    - HTTP 204 or an empty body means the station has no data for that day
      and is returned as an empty observation list.
    - Retries are applied for transient HTTP errors (429/5xx) with exponential backoff.
    - Timeouts and connection errors surface as `NetworkError`.
    """

    api_key: str
    base_url: str = "https://api.weather.com/v2/pws/history/all"
    units: str = "m"
    timeout_connect: float = 5.0
    timeout_read: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5

    def _session(self) -> requests.Session:
        s = requests.Session()
        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    def build_params(self, station_id: str, day: dt.date) -> Dict[str, str]:
        return {
            "stationId": station_id,
            "format": "json",
            "units": self.units,
            "numericPrecision": "decimal",
            "date": day.strftime("%Y%m%d"),
            "apiKey": self.api_key,
        }

    def fetch_day(self, station_id: str, day: dt.date) -> Dict[str, Any]:
        params = self.build_params(station_id, day)
        timeout = (self.timeout_connect, self.timeout_read)
        try:
            with self._session() as s:
                resp = s.get(self.base_url, params=params, timeout=timeout)
                resp.raise_for_status()
        except requests.RequestException as e:
            # The URL carries the API key; keep it out of the message
            status = getattr(getattr(e, "response", None), "status_code", None)
            raise NetworkError(
                f"Request for {station_id} on {day.isoformat()} failed"
                + (f" with HTTP {status}" if status else f": {type(e).__name__}")
            ) from e

        if resp.status_code == 204 or not resp.content:
            return {"observations": []}

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError(f"No JSON response received for {day.isoformat()}") from e
        if not isinstance(data, dict):
            raise ParseError(f"Expected a JSON object for {day.isoformat()}, got {type(data).__name__}")
        return data
