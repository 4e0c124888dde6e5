from __future__ import annotations

import datetime as dt
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Union

import structlog

logger = structlog.get_logger()


def _now() -> dt.datetime:
    return dt.datetime.now()


@dataclass(frozen=True)
class StatusUpdate:
    """Human-readable progress or summary line."""

    text: str
    at: dt.datetime = field(default_factory=_now)


@dataclass(frozen=True)
class DataReceived:
    """A ``YYYY-MM-DD`` local date gained newly persisted observations."""

    date: str
    at: dt.datetime = field(default_factory=_now)


Event = Union[StatusUpdate, DataReceived]
Subscriber = Callable[[Event], None]


class EventBus:
    """Fan status events out to subscribers.

    Every event is logged, so a bus without subscribers still leaves a
    trace. A failing subscriber is logged and does not stop delivery to
    the others.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def status(self, text: str) -> None:
        self.emit(StatusUpdate(text))

    def data_received(self, date: str) -> None:
        self.emit(DataReceived(date))

    def emit(self, event: Event) -> None:
        if isinstance(event, StatusUpdate):
            logger.info("status_update", text=event.text)
        else:
            logger.info("data_received", date=event.date)
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.error("event_subscriber_failed", error=str(e), event=type(event).__name__)


class EventLog:
    """Bounded in-memory history of events, newest last."""

    def __init__(self, maxlen: int = 200) -> None:
        self._events: Deque[Event] = deque(maxlen=maxlen)

    def __call__(self, event: Event) -> None:
        self._events.append(event)

    def recent(self, limit: int = 50) -> List[Event]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def statuses(self) -> List[str]:
        return [e.text for e in self._events if isinstance(e, StatusUpdate)]

    def received_dates(self) -> List[str]:
        return [e.date for e in self._events if isinstance(e, DataReceived)]
