"""Extraction scheduling: cursors, progress events, and the run loop."""

from .events import EventBroker, EventKind, ExtractionEvent
from .scheduler import (
    ExtractionScheduler,
    FileResult,
    RunReport,
    RunStatus,
    RunTrigger,
    SchedulerStatus,
)
from .state import ExtractionStateStore

__all__ = [
    "EventBroker",
    "EventKind",
    "ExtractionEvent",
    "ExtractionScheduler",
    "ExtractionStateStore",
    "FileResult",
    "RunReport",
    "RunStatus",
    "RunTrigger",
    "SchedulerStatus",
]
