"""Run state, session state store and run telemetry."""

from nodeflow.runtime.event_bus import EngineEvent, EventBus, EventType
from nodeflow.runtime.run_state import (
    LogEntry,
    LogSeverity,
    PathEntry,
    RunState,
    RunStatus,
    RunSummary,
    SteppingMode,
)
from nodeflow.runtime.state_store import GlobalStateStore

__all__ = [
    "EngineEvent",
    "EventBus",
    "EventType",
    "GlobalStateStore",
    "LogEntry",
    "LogSeverity",
    "PathEntry",
    "RunState",
    "RunStatus",
    "RunSummary",
    "SteppingMode",
]
