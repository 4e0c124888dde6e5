"""Services subpackage: status events, the ingestion coordinator, the poll
scheduler and the engine that ties them to one station."""

from .coordinator import CycleSummary, IngestionCoordinator
from .engine import IngestionEngine
from .events import DataReceived, EventBus, EventLog, StatusUpdate
from .scheduler import ActiveWindow, PollScheduler, PollState, SchedulerState

__all__ = [
    "ActiveWindow",
    "CycleSummary",
    "DataReceived",
    "EventBus",
    "EventLog",
    "IngestionCoordinator",
    "IngestionEngine",
    "PollScheduler",
    "PollState",
    "SchedulerState",
    "StatusUpdate",
]
