from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class FetchResponse(BaseModel):
    date: dt.date
    dispatched: bool = Field(description="True when the fetch was queued and not awaited")
    received: int = Field(0, ge=0)
    num_new: int = Field(0, ge=0)
    failed_inserts: int = Field(0, ge=0)
    min_time: Optional[str] = None
    max_time: Optional[str] = None
    error: Optional[str] = None


class StatusEvent(BaseModel):
    at: dt.datetime
    kind: str = Field(description="status or data_received")
    text: str


class StatusResponse(BaseModel):
    events: List[StatusEvent]
    completeness: str


class ObservationRow(BaseModel):
    date_time: str
    timezone: Optional[str] = None
    metrics: Dict[str, float]


class ObservationsResponse(BaseModel):
    station_id: str
    date: dt.date
    count: int = Field(ge=0)
    observations: List[ObservationRow]
