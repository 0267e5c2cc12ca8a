"""Tests for RunState: the status machine, logging, path trace and derived states."""

import logging

import pytest

from nodeflow.graph.errors import InvalidStatusTransition, TerminalReason
from nodeflow.graph.model import Node, OperationType
from nodeflow.runtime.run_state import (
    LogSeverity,
    RunState,
    RunStatus,
    SteppingMode,
)
from nodeflow.runtime.state_store import GlobalStateStore


def _node(node_id: str) -> Node:
    return Node(id=node_id, operation_type=OperationType.LOG_VALUE)


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------


class TestStatusMachine:
    def test_new_state_is_idle(self):
        state = RunState()
        assert state.status == RunStatus.IDLE
        assert not state.is_running

    def test_start_then_complete(self):
        state = RunState()
        state.start()
        assert state.is_running
        assert state.complete() is True
        assert state.status == RunStatus.COMPLETED

    def test_complete_only_from_running(self):
        state = RunState()
        assert state.complete() is False
        assert state.status == RunStatus.IDLE

    def test_terminal_states_cannot_restart(self):
        state = RunState()
        state.start()
        state.complete()

        with pytest.raises(InvalidStatusTransition):
            state.start()

    def test_idle_cannot_jump_to_error(self):
        with pytest.raises(InvalidStatusTransition):
            RunState().transition(RunStatus.ERROR)

    def test_same_status_transition_is_noop(self):
        state = RunState()
        state.start()
        state.transition(RunStatus.RUNNING)
        assert state.is_running

    @pytest.mark.parametrize(
        "status", [RunStatus.COMPLETED, RunStatus.ERROR, RunStatus.PAUSED, RunStatus.STOPPED]
    )
    def test_terminal_flags(self, status):
        assert status.is_terminal
        assert not RunStatus.RUNNING.is_terminal


class TestFailStopPause:
    def test_fail_records_reason_and_log(self):
        state = RunState()
        state.start()

        assert state.fail(TerminalReason.ERROR_DIVISION_BY_ZERO, "Bad divisor", "div") is True

        assert state.status == RunStatus.ERROR
        assert state.error == TerminalReason.ERROR_DIVISION_BY_ZERO
        entry = state.log[-1]
        assert entry.severity == LogSeverity.ERROR
        assert entry.node_id == "div"
        assert entry.message.startswith("Bad divisor (")

    def test_first_failure_wins(self):
        state = RunState()
        state.start()
        state.fail(TerminalReason.ERROR_MAX_STEPS_EXCEEDED)

        assert state.fail(TerminalReason.ERROR_OPERATION_FAILED) is False
        assert state.error == TerminalReason.ERROR_MAX_STEPS_EXCEEDED
        assert len(state.entries(LogSeverity.ERROR)) == 1

    def test_stop_request(self):
        state = RunState()
        state.start()

        assert state.request_stop() is True
        assert state.status == RunStatus.STOPPED
        assert state.error == TerminalReason.MANUAL_STOP
        assert state.request_stop() is False

    def test_stop_after_failure_is_ignored(self):
        state = RunState()
        state.start()
        state.fail(TerminalReason.ERROR_OPERATION_FAILED)

        assert state.request_stop() is False
        assert state.status == RunStatus.ERROR

    def test_pause_at_node(self):
        state = RunState()
        state.start()

        assert state.pause_at("n2") is True
        assert state.status == RunStatus.PAUSED
        assert state.paused_node_id == "n2"
        assert state.summary().paused_node_id == "n2"


# ---------------------------------------------------------------------------
# Logging and path
# ---------------------------------------------------------------------------


class TestLogAndPath:
    def test_add_log_mirrors_to_python_logging(self, caplog):
        state = RunState()

        with caplog.at_level(logging.DEBUG, logger="nodeflow.runtime.run_state"):
            state.add_log("hello", LogSeverity.SUCCESS, "n1")

        assert state.log[0].message == "hello"
        record = caplog.records[-1]
        assert record.getMessage() == "hello"
        assert record.levelno == logging.INFO
        assert record.node_id == "n1"

    def test_entries_filter_by_severity(self):
        state = RunState()
        state.add_log("a", LogSeverity.DEBUG)
        state.add_log("b", LogSeverity.INFO)
        state.add_log("c", LogSeverity.DEBUG)

        assert [e.message for e in state.entries(LogSeverity.DEBUG)] == ["a", "c"]
        assert len(state.entries()) == 3

    def test_path_and_visit_counts(self):
        state = RunState()
        for node_id in ["a", "b", "a"]:
            state.record_step(_node(node_id))

        assert state.steps_taken == 3
        assert state.path_node_ids() == ["a", "b", "a"]
        assert state.visit_count("a") == 2
        assert state.visit_count("z") == 0
        assert state.full_execution_path[0].operation_type == OperationType.LOG_VALUE


# ---------------------------------------------------------------------------
# Derived states
# ---------------------------------------------------------------------------


class TestDerivedStates:
    def test_fork_shares_store_but_not_log(self):
        store = GlobalStateStore()
        state = RunState(global_state_store=store, max_cycle_depth=4)
        state.start()
        state.add_log("parent")
        state.record_step(_node("a"))

        sub = state.fork()

        assert sub.is_running
        assert sub.global_state_store is store
        assert sub.max_cycle_depth == 4
        assert sub.run_id == state.run_id
        assert sub.log == []
        assert sub.steps_taken == 0

    def test_continue_from_carries_log_and_context(self):
        state = RunState()
        state.start()
        state.add_log("before pause")
        state.dispatch_context["k"] = 1
        state.pause_at("n3")

        resumed = RunState.continue_from(state, "step_over")

        assert resumed.status == RunStatus.IDLE
        assert resumed.stepping_mode == SteppingMode.STEP_OVER
        assert resumed.paused_node_id == "n3"
        assert resumed.global_state_store is state.global_state_store
        assert [e.message for e in resumed.log][:1] == ["before pause"]
        assert resumed.dispatch_context == {"k": 1}
        assert resumed.run_id != state.run_id

        resumed.dispatch_context["k"] = 2
        assert state.dispatch_context["k"] == 1

    def test_summary_and_dict(self):
        store = GlobalStateStore({"hp": 5})
        state = RunState(global_state_store=store)
        state.start()
        state.record_step(_node("a"))
        state.add_log("x", LogSeverity.DEBUG)
        state.complete()

        summary = state.summary()
        data = state.to_dict()

        assert summary.status == RunStatus.COMPLETED
        assert summary.steps == 1
        assert summary.path == ["a"]
        assert summary.log_counts == {"debug": 1}
        assert summary.paused_node_id is None
        assert data["summary"]["status"] == "completed"
        assert data["log"][0]["severity"] == "debug"
        assert data["global_state"] == {"hp": 5}
