"""
Run State - The mutable record threaded through one resolution or dispatch.

A RunState holds the run's log, status, visited-node trace, recursion
guard counters, pause/step bookkeeping and a reference to the session's
global state store. It is passed by reference to every node function.

Status machine:
    idle -> running -> {completed, error, paused, stopped}

Transitions out of running are one-way. A paused run is resumed by building
a fresh state with `RunState.continue_from()`, never by flipping the old one
back to running.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from nodeflow.graph.errors import InvalidStatusTransition, TerminalReason
from nodeflow.graph.model import MAX_CYCLE_DEPTH_LIMIT, Node, OperationType
from nodeflow.runtime.state_store import GlobalStateStore

logger = logging.getLogger(__name__)


class RunStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    PAUSED = "paused"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.PAUSED, RunStatus.STOPPED)


_ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.IDLE: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset(
        {RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.PAUSED, RunStatus.STOPPED}
    ),
}


class SteppingMode(StrEnum):
    """How a continuation proceeds from the paused node."""

    RUN = "run"
    STEP_OVER = "step_over"
    STEP_INTO = "step_into"
    STEP_OUT = "step_out"


class LogSeverity(StrEnum):
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"
    DEBUG = "debug"
    AGENT_PLAN = "agent_plan"


_SEVERITY_LEVELS = {
    LogSeverity.INFO: logging.INFO,
    LogSeverity.ERROR: logging.ERROR,
    LogSeverity.SUCCESS: logging.INFO,
    LogSeverity.DEBUG: logging.DEBUG,
    LogSeverity.AGENT_PLAN: logging.INFO,
}


class LogEntry(BaseModel):
    """A single entry in a run's log."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    node_id: str | None = None
    message: str
    severity: LogSeverity = LogSeverity.INFO


class PathEntry(BaseModel):
    """One visited node in the execution path."""

    node_id: str
    operation_type: OperationType


class RunSummary(BaseModel):
    """Serializable digest of a finished run."""

    run_id: str
    status: RunStatus
    error: str | None = None
    steps: int = 0
    path: list[str] = Field(default_factory=list)
    log_counts: dict[str, int] = Field(default_factory=dict)
    paused_node_id: str | None = None


@dataclass
class RunState:
    """Mutable per-run record. See module docstring for the status machine."""

    global_state_store: GlobalStateStore = field(default_factory=GlobalStateStore)
    max_cycle_depth: int = MAX_CYCLE_DEPTH_LIMIT
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.IDLE
    error: str | None = None
    log: list[LogEntry] = field(default_factory=list)
    full_execution_path: list[PathEntry] = field(default_factory=list)
    cycle_depth: int = 0
    paused_node_id: str | None = None
    stepping_mode: SteppingMode | None = None
    dispatch_context: dict[str, Any] = field(default_factory=dict)  # kept for continuations

    # === LOGGING ===

    def add_log(
        self,
        message: str,
        severity: LogSeverity = LogSeverity.INFO,
        node_id: str | None = None,
    ) -> LogEntry:
        """Append a log entry and mirror it to the Python logger."""
        entry = LogEntry(node_id=node_id, message=message, severity=severity)
        self.log.append(entry)
        logger.log(
            _SEVERITY_LEVELS[severity],
            message,
            extra={"node_id": node_id, "event": severity.value},
        )
        return entry

    def entries(self, severity: LogSeverity | None = None) -> list[LogEntry]:
        if severity is None:
            return list(self.log)
        return [e for e in self.log if e.severity == severity]

    # === STATUS ===

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    def transition(self, new_status: RunStatus) -> None:
        """Move to a new status, enforcing the state machine."""
        if new_status == self.status:
            return
        if new_status not in _ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStatusTransition(
                f"Run {self.run_id}: cannot move from '{self.status}' to '{new_status}'"
            )
        self.status = new_status

    def start(self) -> None:
        self.transition(RunStatus.RUNNING)

    def complete(self) -> bool:
        """Mark a still-running run as completed. Returns False otherwise."""
        if not self.is_running:
            return False
        self.transition(RunStatus.COMPLETED)
        return True

    def fail(
        self,
        reason: TerminalReason | str,
        message: str | None = None,
        node_id: str | None = None,
    ) -> bool:
        """
        Halt the run with an error.

        Returns False (and records nothing) if the run had already left
        running, e.g. a stop request raced with a failing node.
        """
        if not self.is_running:
            return False
        self.error = str(reason)
        text = f"{message} ({reason})" if message else str(reason)
        self.add_log(text, LogSeverity.ERROR, node_id)
        self.transition(RunStatus.ERROR)
        return True

    def request_stop(self) -> bool:
        """External stop request. Honoured at the engine's next guard check."""
        if not self.is_running:
            return False
        self.error = str(TerminalReason.MANUAL_STOP)
        self.add_log(str(TerminalReason.MANUAL_STOP), LogSeverity.INFO)
        self.transition(RunStatus.STOPPED)
        return True

    def pause_at(self, node_id: str) -> bool:
        if not self.is_running:
            return False
        self.paused_node_id = node_id
        self.transition(RunStatus.PAUSED)
        self.add_log(f"Execution paused before node '{node_id}'.", LogSeverity.INFO, node_id)
        return True

    # === PATH TRACE ===

    def record_step(self, node: Node) -> None:
        self.full_execution_path.append(
            PathEntry(node_id=node.id, operation_type=node.operation_type)
        )

    @property
    def steps_taken(self) -> int:
        return len(self.full_execution_path)

    def visit_count(self, node_id: str) -> int:
        return sum(1 for entry in self.full_execution_path if entry.node_id == node_id)

    def path_node_ids(self) -> list[str]:
        return [entry.node_id for entry in self.full_execution_path]

    # === DERIVED STATES ===

    def fork(self) -> RunState:
        """
        Fresh running state for an on-demand sub-resolution.

        Shares the global store and limits; log and path start empty.
        """
        sub = RunState(
            global_state_store=self.global_state_store,
            max_cycle_depth=self.max_cycle_depth,
            run_id=self.run_id,
        )
        sub.start()
        return sub

    @classmethod
    def continue_from(
        cls,
        previous: RunState,
        stepping_mode: SteppingMode | str = SteppingMode.RUN,
    ) -> RunState:
        """Build the idle state of a continuation, carrying the log forward."""
        return cls(
            global_state_store=previous.global_state_store,
            max_cycle_depth=previous.max_cycle_depth,
            log=list(previous.log),
            paused_node_id=previous.paused_node_id,
            stepping_mode=SteppingMode(stepping_mode),
            dispatch_context=dict(previous.dispatch_context),
        )

    def summary(self) -> RunSummary:
        counts: dict[str, int] = {}
        for entry in self.log:
            counts[entry.severity.value] = counts.get(entry.severity.value, 0) + 1
        return RunSummary(
            run_id=self.run_id,
            status=self.status,
            error=self.error,
            steps=self.steps_taken,
            path=self.path_node_ids(),
            log_counts=counts,
            paused_node_id=self.paused_node_id if self.status == RunStatus.PAUSED else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary().model_dump(mode="json"),
            "log": [entry.model_dump(mode="json") for entry in self.log],
            "global_state": self.global_state_store.snapshot(),
        }
