from __future__ import annotations

import asyncio
import datetime as dt
import re
from collections import Counter
from typing import Callable, Optional

import structlog

from pws_ingest.config import Settings
from pws_ingest.errors import ConfigurationError
from pws_ingest.ingestion.client import ObservationFetcher, WundergroundClient
from pws_ingest.ingestion.completeness import CompletenessReport, completeness_report
from pws_ingest.ingestion.dedup import DeduplicationIndex
from pws_ingest.ingestion.normalize import Normalizer
from pws_ingest.ingestion.storage import ObservationStore
from .coordinator import CycleSummary, IngestionCoordinator
from .events import EventBus
from .scheduler import DEFAULT_POLL_INTERVAL_S, ActiveWindow, PollScheduler, PollState, SchedulerState, TickResult

logger = structlog.get_logger()

API_KEY_FORMAT = re.compile(r"^[0-9a-z]{32}$")

FetcherFactory = Callable[[str], ObservationFetcher]


class IngestionEngine:
    """Write-once setup plus the poll loop for one station.

    Station id, API key and store are each set exactly once; the engine
    only starts once all three are present. Built by the composition root
    (CLI or API app factory) and passed to whoever needs it.
    """

    def __init__(
        self,
        window: Optional[ActiveWindow] = None,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
        events: Optional[EventBus] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
        normalizer: Optional[Normalizer] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ) -> None:
        self.window = window or ActiveWindow.parse("06:00", "22:00")
        self.interval_s = interval_s
        self.events = events or EventBus()
        self._fetcher_factory = fetcher_factory or (lambda api_key: WundergroundClient(api_key=api_key))
        self._normalizer = normalizer or Normalizer()
        self._clock = clock

        self.station_id: Optional[str] = None
        self._api_key: Optional[str] = None
        self.store: Optional[ObservationStore] = None
        self.index = DeduplicationIndex()
        self.completeness: CompletenessReport = CompletenessReport()
        self.poll_state = PollState(start_time=clock())

        self._coordinator: Optional[IngestionCoordinator] = None
        self._scheduler: Optional[PollScheduler] = None
        self._loop_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        events: Optional[EventBus] = None,
        fetcher_factory: Optional[FetcherFactory] = None,
    ) -> "IngestionEngine":
        """Build and fully configure an engine from settings.

        Raises `ConfigurationError` for missing or malformed values and
        `StorageOpenError` when the database cannot be opened.
        """
        if fetcher_factory is None:
            def fetcher_factory(api_key: str) -> ObservationFetcher:
                return WundergroundClient(
                    api_key=api_key,
                    base_url=settings.base_url,
                    timeout_connect=settings.timeout_connect,
                    timeout_read=settings.timeout_read,
                    max_retries=settings.max_retries,
                )

        engine = cls(
            window=ActiveWindow.parse(settings.active_start, settings.active_end),
            interval_s=settings.poll_interval_s,
            events=events,
            fetcher_factory=fetcher_factory,
        )
        engine.set_station_id(settings.station_id or "")
        engine.set_api_key(settings.api_key or "")
        engine.open_store(settings.database)
        return engine

    # Setup

    def set_station_id(self, station_id: str) -> None:
        station_id = (station_id or "").strip()
        if not station_id:
            raise ConfigurationError("PWS station name cannot be empty.")
        if self.station_id is not None:
            raise ConfigurationError("PWS station name has already been set.")
        self.station_id = station_id

    def set_api_key(self, api_key: str) -> None:
        if not api_key:
            raise ConfigurationError("Empty API key provided.")
        if self._api_key is not None:
            raise ConfigurationError("Weather Underground API key has already been set.")
        if not API_KEY_FORMAT.match(api_key):
            # Never echo the key itself
            raise ConfigurationError("API key does not have a valid format (32 lowercase letters or digits).")
        self._api_key = api_key

    def open_store(self, location: str) -> ObservationStore:
        if self.store is not None:
            raise ConfigurationError("Database is already connected.")
        return self.attach_store(ObservationStore.open(location))

    def attach_store(self, store: ObservationStore) -> ObservationStore:
        """Adopt an open store and rebuild the index from a full scan."""
        if self.store is not None:
            raise ConfigurationError("Database is already connected.")

        days: Counter = Counter()
        index = DeduplicationIndex()
        for record in store.scan():
            index.mark_known(record.station_id, record.observed_at)
            days[record.day] += 1

        self.store = store
        self.index = index
        self.events.status(f"Database read; {index.stations} stations, {len(index)} records in total.")
        self.completeness = completeness_report(days)
        if not self.completeness.empty:
            self.events.status(self.completeness.message())
        return store

    @property
    def configured(self) -> bool:
        return self.station_id is not None and self._api_key is not None and self.store is not None

    def _require_configured(self) -> IngestionCoordinator:
        if self.station_id is None:
            raise ConfigurationError("PWS name has not been set.")
        if self._api_key is None:
            raise ConfigurationError("API key has not been set.")
        if self.store is None:
            raise ConfigurationError("Database is not connected.")
        if self._coordinator is None:
            self._coordinator = IngestionCoordinator(
                station_id=self.station_id,
                fetcher=self._fetcher_factory(self._api_key),
                store=self.store,
                index=self.index,
                events=self.events,
                normalizer=self._normalizer,
            )
        return self._coordinator

    @property
    def coordinator(self) -> IngestionCoordinator:
        return self._require_configured()

    @property
    def scheduler(self) -> Optional[PollScheduler]:
        return self._scheduler

    # Lifecycle

    def start(self) -> None:
        if self.poll_state.running:
            raise ConfigurationError("Updates are already running.")
        coordinator = self._require_configured()
        self.poll_state.running = True
        self.poll_state.start_time = self._clock()
        if self._scheduler is None:
            self._scheduler = PollScheduler(
                coordinator,
                self.window,
                self.events,
                state=self.poll_state,
                interval_s=self.interval_s,
                clock=self._clock,
            )
        self._scheduler.state = SchedulerState.IDLE
        self.events.status(
            f"Started updates from Weather Underground on {self.poll_state.start_time:%d %b %Y, %H:%M:%S}"
        )

    def stop(self) -> None:
        if not self.poll_state.running:
            raise ConfigurationError("Updates not running.")
        self.poll_state.running = False
        if self._scheduler is not None:
            self._scheduler.state = SchedulerState.IDLE
        self.events.status(f"Stopped updates from Weather Underground on {self._clock():%d %b %Y %H:%M:%S}")

    @property
    def state(self) -> SchedulerState:
        if self._scheduler is None:
            return SchedulerState.UNCONFIGURED
        return self._scheduler.state

    def uptime(self) -> str:
        secs = max(0, int((self._clock() - self.poll_state.start_time).total_seconds()))
        return f"{secs // 3600}:{(secs // 60) % 60:02d}:{secs % 60:02d}"

    def tick(self, now: Optional[dt.datetime] = None) -> TickResult:
        if self._scheduler is None:
            raise ConfigurationError("Updates have not been started.")
        return self._scheduler.tick(now)

    async def request_date(self, day: dt.date) -> CycleSummary:
        """Fetch one specific date now, regardless of the active window."""
        coordinator = self._require_configured()
        logger.info("manual_fetch_requested", date=day.isoformat())
        return await coordinator.poll(day)

    async def run_forever(self) -> None:
        """Start (if needed) and tick until cancelled."""
        if not self.poll_state.running:
            self.start()
        await self._scheduler.run()

    def launch(self) -> asyncio.Task:
        """Run the poll loop as a background task on the current event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run_forever())
        return self._loop_task

    def dispatch_date(self, day: dt.date) -> asyncio.Task:
        """Queue a fetch of one specific date without waiting for it."""
        coordinator = self._require_configured()
        logger.info("manual_fetch_dispatched", date=day.isoformat())
        return coordinator.dispatch([day])

    async def shutdown(self, grace_s: float = 30.0) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
        # Scheduled cycles and dispatched fetches share one grace period
        outstanding = []
        if self._scheduler is not None:
            outstanding.append(self._scheduler.wait_pending())
        if self._coordinator is not None:
            outstanding.append(self._coordinator.wait_idle())
        if outstanding:
            try:
                await asyncio.wait_for(asyncio.gather(*outstanding), timeout=grace_s)
            except asyncio.TimeoutError:
                logger.warning("shutdown_with_fetch_outstanding", grace_s=grace_s)
        if self.poll_state.running:
            self.stop()
        if self.store is not None:
            self.store.close()
