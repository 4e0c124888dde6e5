from __future__ import annotations

import asyncio
import datetime as dt
import enum
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from pws_ingest.errors import ConfigurationError
from .coordinator import IngestionCoordinator
from .events import EventBus

logger = structlog.get_logger()

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

DEFAULT_POLL_INTERVAL_S = 3600


def parse_hhmm(value: str) -> dt.time:
    match = _HHMM.match(value or "")
    if not match:
        raise ConfigurationError(f"Time of day must be HH:MM, got {value!r}")
    return dt.time(int(match.group(1)), int(match.group(2)))


@dataclass(frozen=True)
class ActiveWindow:
    """Time-of-day range ``[start, end)`` in which periodic polling runs."""

    start: dt.time
    end: dt.time

    @classmethod
    def parse(cls, start: str, end: str) -> "ActiveWindow":
        window = cls(parse_hhmm(start), parse_hhmm(end))
        if window.start == window.end:
            raise ConfigurationError(f"Active window is empty: {start}-{end}")
        return window

    def contains(self, moment: dt.time) -> bool:
        if self.start < self.end:
            return self.start <= moment < self.end
        # Window spans midnight, e.g. 22:00-06:00
        return moment >= self.start or moment < self.end

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


class SchedulerState(str, enum.Enum):
    UNCONFIGURED = "unconfigured"
    IDLE = "idle"
    POLLING = "polling"
    PAUSED = "paused"


@dataclass
class PollState:
    """Mutable scheduler cursor; lives and dies with the process."""

    last_polled_date: Optional[dt.date] = None
    running: bool = False
    start_time: dt.datetime = field(default_factory=dt.datetime.now)


@dataclass
class TickResult:
    state: SchedulerState
    dates: List[dt.date] = field(default_factory=list)
    task: Optional[asyncio.Task] = None


class PollScheduler:
    """Decide once per tick whether to poll today, yesterday and today, or nothing.

    Outside the active window the tick reports a pause and fetches nothing.
    Inside it, a calendar-date change since the last successful poll first
    re-polls the previous date, which the provider keeps revising until the
    day ends. Only that one preceding date is backfilled automatically.
    A tick never waits for the fetch; while a scheduled fetch is still
    outstanding, further ticks dispatch nothing.
    """

    def __init__(
        self,
        coordinator: IngestionCoordinator,
        window: ActiveWindow,
        events: EventBus,
        state: Optional[PollState] = None,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ) -> None:
        if interval_s <= 0:
            raise ConfigurationError(f"Poll interval must be positive, got {interval_s}")
        self._coordinator = coordinator
        self.window = window
        self._events = events
        self.poll_state = state or PollState()
        self.interval_s = interval_s
        self._clock = clock
        self.state = SchedulerState.IDLE if self.poll_state.running else SchedulerState.UNCONFIGURED
        self._pending: Optional[asyncio.Task] = None

    def tick(self, now: Optional[dt.datetime] = None) -> TickResult:
        now = now or self._clock()
        if not self.poll_state.running:
            # Stopped after a start: configured, just not fetching
            if self.state is not SchedulerState.UNCONFIGURED:
                self.state = SchedulerState.IDLE
            return TickResult(self.state)

        if not self.window.contains(now.time()):
            self.state = SchedulerState.PAUSED
            self._events.status(f"Downloading data paused; resuming at {self.window.start:%H:%M}.")
            return TickResult(self.state)

        if self._pending is not None and not self._pending.done():
            logger.warning("poll_skipped_previous_outstanding", at=now.isoformat(timespec="seconds"))
            self.state = SchedulerState.IDLE
            return TickResult(self.state)

        self.state = SchedulerState.POLLING
        today = now.date()
        dates = [today]
        if self.poll_state.last_polled_date != today:
            dates.insert(0, today - dt.timedelta(days=1))

        task = asyncio.create_task(self._run_cycle(today, dates))
        task.add_done_callback(self._log_cycle_failure)
        self._pending = task
        self.state = SchedulerState.IDLE
        return TickResult(SchedulerState.POLLING, dates, task)

    async def _run_cycle(self, today: dt.date, dates: List[dt.date]) -> None:
        summaries = await self._coordinator.poll_many(dates)
        if all(s.ok for s in summaries):
            self.poll_state.last_polled_date = today

    @staticmethod
    def _log_cycle_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("poll_cycle_failed", error=str(exc), kind=type(exc).__name__)

    async def run(self) -> None:
        """Tick on a fixed cadence until cancelled."""
        logger.info("scheduler_started", interval_s=self.interval_s, window=str(self.window))
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while True:
            try:
                self.tick()
            except Exception as e:
                logger.error("scheduler_tick_failed", error=str(e))
            next_at += self.interval_s
            await asyncio.sleep(max(0.0, next_at - loop.time()))

    async def wait_pending(self) -> None:
        if self._pending is not None:
            await asyncio.gather(self._pending, return_exceptions=True)
