import datetime as dt

import pandas as pd
from fastapi import APIRouter, HTTPException, Query, Request

import structlog
from ...errors import ConfigurationError, StorageError
from ...schemas.ingest import (
    FetchResponse,
    ObservationRow,
    ObservationsResponse,
    StatusEvent,
    StatusResponse,
)
from ...services.events import StatusUpdate

router = APIRouter()
logger = structlog.get_logger()


def _parse_day(value: str) -> dt.date:
    for fmt in ("%Y%m%d", "%Y-%m-%d"):
        try:
            return dt.datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise HTTPException(status_code=422, detail=f"Date must be YYYYMMDD or YYYY-MM-DD, got {value!r}")


@router.post(
    "/fetch/{day}",
    response_model=FetchResponse,
    summary="Fetch a specific date",
    responses={
        200: {
            "description": "Fetch completed (or queued when wait=false)",
            "content": {
                "application/json": {
                    "example": {
                        "date": "2025-05-01",
                        "dispatched": False,
                        "received": 288,
                        "num_new": 12,
                        "failed_inserts": 0,
                        "min_time": "00:04:59",
                        "max_time": "23:59:59",
                        "error": None,
                    }
                }
            },
        },
        503: {"description": "Engine not configured"},
    },
)
async def fetch_date(
    request: Request,
    day: str,
    wait: bool = Query(True, description="Wait for the fetch to finish and report its outcome"),
) -> FetchResponse:
    engine = request.app.state.engine
    target = _parse_day(day)
    try:
        if not wait:
            engine.dispatch_date(target)
            return FetchResponse(date=target, dispatched=True)
        summary = await engine.request_date(target)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return FetchResponse(
        date=target,
        dispatched=False,
        received=summary.received,
        num_new=summary.num_new,
        failed_inserts=summary.failed_inserts,
        min_time=summary.min_time,
        max_time=summary.max_time,
        error=summary.error,
    )


@router.get("/status", response_model=StatusResponse, summary="Recent status events")
def status(request: Request, limit: int = Query(50, gt=0, le=1000)) -> StatusResponse:
    engine = request.app.state.engine
    event_log = request.app.state.event_log
    events = []
    for e in event_log.recent(limit):
        if isinstance(e, StatusUpdate):
            events.append(StatusEvent(at=e.at, kind="status", text=e.text))
        else:
            events.append(StatusEvent(at=e.at, kind="data_received", text=e.date))
    return StatusResponse(events=events, completeness=engine.completeness.message())


@router.get("/observations/{day}", response_model=ObservationsResponse, summary="Stored observations for a date")
def observations(request: Request, day: str) -> ObservationsResponse:
    engine = request.app.state.engine
    target = _parse_day(day)
    if engine.store is None or engine.station_id is None:
        raise HTTPException(status_code=503, detail="Database is not connected.")
    try:
        df = engine.store.read_day(engine.station_id, target)
    except StorageError as e:
        logger.exception("read_day_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Observation store unavailable")

    rows = []
    for ts, row in df.iterrows():
        metrics = {
            col: float(v)
            for col, v in row.drop(labels=["timezone"]).items()
            if pd.notna(v)
        }
        tz = row["timezone"]
        rows.append(
            ObservationRow(
                date_time=ts.strftime("%Y-%m-%d %H:%M:%S"),
                timezone=tz if isinstance(tz, str) else None,
                metrics=metrics,
            )
        )
    return ObservationsResponse(station_id=engine.station_id, date=target, count=len(rows), observations=rows)
