from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Set

import structlog

from pws_ingest.errors import (
    DuplicateObservationError,
    FetchError,
    NormalizationError,
    StorageError,
)
from pws_ingest.ingestion.client import ObservationFetcher
from pws_ingest.ingestion.dedup import DeduplicationIndex
from pws_ingest.ingestion.normalize import Normalizer
from pws_ingest.ingestion.storage import ObservationStore
from .events import EventBus

logger = structlog.get_logger()


@dataclass
class CycleSummary:
    """Outcome of one poll of one date."""

    requested: dt.date
    received: int = 0
    num_new: int = 0
    failed_inserts: int = 0
    min_time: Optional[str] = None
    max_time: Optional[str] = None
    new_dates: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IngestionCoordinator:
    """Run Fetcher -> Normalizer -> dedup check -> store -> index for a date.

    The coordinator owns the deduplication index and the store handle. The
    fetch is the only await; everything after it runs without yielding to
    the event loop, so index and store mutations are serialized even when
    responses arrive out of order.
    """

    def __init__(
        self,
        station_id: str,
        fetcher: ObservationFetcher,
        store: ObservationStore,
        index: DeduplicationIndex,
        events: EventBus,
        normalizer: Optional[Normalizer] = None,
    ) -> None:
        self.station_id = station_id
        self._fetcher = fetcher
        self._store = store
        self._index = index
        self._events = events
        self._normalizer = normalizer or Normalizer()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def dispatch(self, days: Iterable[dt.date]) -> asyncio.Task:
        """Poll `days` in order on a background task (fire-and-forget)."""
        task = asyncio.create_task(self.poll_many(list(days)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def poll_many(self, days: List[dt.date]) -> List[CycleSummary]:
        return [await self.poll(day) for day in days]

    async def poll(self, day: dt.date) -> CycleSummary:
        logger.info("poll_started", station_id=self.station_id, date=day.isoformat())
        try:
            payload = await asyncio.to_thread(self._fetcher.fetch_day, self.station_id, day)
        except FetchError as e:
            # Network errors and timeouts are handled the same way: nothing new this cycle
            logger.warning("fetch_failed", date=day.isoformat(), error=str(e), kind=type(e).__name__)
            self._events.status(f"Could not obtain update for {day.isoformat()} from WU server: {e}")
            return CycleSummary(requested=day, error=str(e))
        return self.ingest_payload(day, payload)

    def ingest_payload(self, day: dt.date, payload: Mapping[str, Any]) -> CycleSummary:
        """Persist the new observations of one provider response."""
        summary = CycleSummary(requested=day)
        try:
            records = self._normalizer.normalize_payload(payload)
        except (NormalizationError, FetchError) as e:
            logger.error("batch_rejected", date=day.isoformat(), error=str(e), kind=type(e).__name__)
            self._events.status(f"Rejected update for {day.isoformat()} from WU server: {e}")
            summary.error = str(e)
            return summary

        new_dates: Set[str] = set()
        for record in records:
            summary.received += 1
            summary.min_time = record.time_of_day if summary.min_time is None else min(summary.min_time, record.time_of_day)
            summary.max_time = record.time_of_day if summary.max_time is None else max(summary.max_time, record.time_of_day)

            if self._index.is_known(record.station_id, record.observed_at):
                continue
            try:
                self._store.insert(record)
            except DuplicateObservationError:
                # Stored before the index heard about it; catch the index up
                self._index.mark_known(record.station_id, record.observed_at)
                continue
            except StorageError as e:
                summary.failed_inserts += 1
                logger.error("observation_insert_failed", station_id=record.station_id, observed_at=record.observed_at, error=str(e))
                continue
            self._index.mark_known(record.station_id, record.observed_at)
            summary.num_new += 1
            new_dates.add(record.day)

        summary.new_dates = sorted(new_dates)
        for date in summary.new_dates:
            self._events.data_received(date)
        self._events.status(self._describe(summary))
        return summary

    @staticmethod
    def _describe(summary: CycleSummary) -> str:
        text = (
            f"Obtained update for {summary.requested.isoformat()} from WU server "
            f"({summary.received} observations, {summary.num_new} new"
        )
        if summary.received:
            text += f", {summary.min_time} to {summary.max_time}"
        text += ")"
        if summary.failed_inserts:
            text += f"; {summary.failed_inserts} could not be stored and will be retried"
        return text
