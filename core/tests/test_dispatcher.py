"""
Tests for push-mode dispatch through GraphEngine.dispatch_event.

Execution graphs here are chains of LOG_VALUE nodes whose inputs carry
literal overrides, so the run log records exactly which nodes ran.
"""

import pytest

from conftest import log_messages, make_config, out_port, times_ten_body
from nodeflow.graph.engine import GraphEngine
from nodeflow.graph.errors import TerminalReason
from nodeflow.graph.model import Connection, OperationType, PortType
from nodeflow.nodes import create_iterate_node, create_molecular_node
from nodeflow.nodes.factory import exec_in, exec_out
from nodeflow.runtime.event_bus import EventBus, EventType
from nodeflow.runtime.run_state import LogSeverity, RunStatus, SteppingMode
from nodeflow.runtime.state_store import GlobalStateStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def log_chain(builder, event_name: str, labels: list[str]):
    """ON_EVENT followed by one LOG_VALUE per label, pulsed in order."""
    event = builder.add(OperationType.ON_EVENT, "event", event_name=event_name)
    previous, previous_port = event, "Triggered"
    logs = []
    for label in labels:
        log = builder.add(OperationType.LOG_VALUE, label)
        builder.override(log, "Input", label)
        builder.pulse(previous, previous_port, log, "Execute")
        previous, previous_port = log, "Executed"
        logs.append(log)
    return event, logs


def logged_values(state) -> list[str]:
    return log_messages(state, "LOG: ")


# ---------------------------------------------------------------------------
# Event entry
# ---------------------------------------------------------------------------


class TestEventEntry:
    @pytest.mark.asyncio
    async def test_chain_runs_in_order(self, engine, builder):
        log_chain(builder, "go", ["a", "b", "c"])

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.path_node_ids() == ["event", "a", "b", "c"]
        assert logged_values(state) == ['LOG: "a"', 'LOG: "b"', 'LOG: "c"']
        assert state.log[-1].severity == LogSeverity.SUCCESS

    @pytest.mark.asyncio
    async def test_unmatched_event_completes_quietly(self, engine, builder):
        """No listener: the run completes with an empty path and a debug note."""
        log_chain(builder, "go", ["a"])

        state = await engine.dispatch_event("other", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.path_node_ids() == []
        debug = [e.message for e in state.entries(LogSeverity.DEBUG)]
        assert "No ON_EVENT node listens for 'other'." in debug

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_name", ["", "   "])
    async def test_blank_event_name_fails(self, engine, builder, event_name):
        log_chain(builder, "go", ["a"])

        state = await engine.dispatch_event(event_name, None, builder.nodes, builder.connections)

        assert state.status == RunStatus.ERROR
        assert state.error == TerminalReason.ERROR_EVENT_NAME_MISSING

    @pytest.mark.asyncio
    async def test_payload_reaches_connected_input(self, engine, builder):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="attack")
        log = builder.add(OperationType.LOG_VALUE, "log")
        builder.pulse(event, "Triggered", log, "Execute")
        builder.wire(event, "Payload", log, "Input")

        state = await engine.dispatch_event(
            "attack", {"hp": 3}, builder.nodes, builder.connections
        )

        assert state.status == RunStatus.COMPLETED
        assert logged_values(state) == ['LOG: {"hp": 3}']
        assert state.path_node_ids() == ["event", "log"]

    @pytest.mark.asyncio
    async def test_every_listener_fires_in_node_order(self, engine, builder):
        first = builder.add(OperationType.ON_EVENT, "first", event_name="tick")
        second = builder.add(OperationType.ON_EVENT, "second", event_name="tick")
        one = builder.add(OperationType.LOG_VALUE, "one")
        two = builder.add(OperationType.LOG_VALUE, "two")
        builder.override(one, "Input", 1)
        builder.override(two, "Input", 2)
        builder.pulse(first, "Triggered", one, "Execute")
        builder.pulse(second, "Triggered", two, "Execute")

        state = await engine.dispatch_event("tick", None, builder.nodes, builder.connections)

        assert state.path_node_ids() == ["first", "one", "second", "two"]

    @pytest.mark.asyncio
    async def test_dispatch_from_node(self, engine, builder):
        _, (a, b) = log_chain(builder, "go", ["a", "b"])

        state = await engine.dispatch_from_node(a.id, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.path_node_ids() == ["a", "b"]


# ---------------------------------------------------------------------------
# Branching and pass-through
# ---------------------------------------------------------------------------


class TestBranching:
    def _branch_graph(self, builder):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        branch = builder.add(OperationType.BRANCH, "branch")
        yes = builder.add(OperationType.LOG_VALUE, "yes")
        no = builder.add(OperationType.LOG_VALUE, "no")
        builder.override(yes, "Input", "A")
        builder.override(no, "Input", "B")
        builder.pulse(event, "Triggered", branch, "Execute")
        builder.pulse(branch, "If True (Exec)", yes, "Execute")
        builder.pulse(branch, "If False (Exec)", no, "Execute")
        return branch

    @pytest.mark.asyncio
    async def test_true_condition_takes_true_branch(self, engine, builder):
        branch = self._branch_graph(builder)
        condition = builder.add(OperationType.VALUE_PROVIDER, "cond", value=True)
        builder.wire(condition, "Value", branch, "Condition")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert logged_values(state) == ['LOG: "A"']
        assert state.path_node_ids() == ["event", "branch", "yes"]

    @pytest.mark.asyncio
    async def test_unconnected_condition_defaults_to_false(self, engine, builder):
        self._branch_graph(builder)

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert logged_values(state) == ['LOG: "B"']

    @pytest.mark.asyncio
    async def test_non_boolean_condition_fails(self, engine, builder):
        branch = self._branch_graph(builder)
        builder.override(branch, "Condition", "yes")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.error == TerminalReason.ERROR_INVALID_INPUT_TYPE
        assert logged_values(state) == []

    @pytest.mark.asyncio
    async def test_node_without_step_passes_pulse_through(self, engine, builder, registry):
        """A composite in an execution chain fires its first execution output."""
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        mol = builder.add_node(
            create_molecular_node(
                registry,
                input_ports=[exec_in("mol", "In")],
                output_ports=[exec_out("mol", "Out")],
                node_id="mol",
            )
        )
        log = builder.add(OperationType.LOG_VALUE, "log")
        builder.override(log, "Input", "after")
        builder.pulse(event, "Triggered", mol, "In")
        builder.pulse(mol, "Out", log, "Execute")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.path_node_ids() == ["event", "mol", "log"]
        assert logged_values(state) == ['LOG: "after"']


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def _loop_graph(builder):
    event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
    a = builder.add(OperationType.LOG_VALUE, "a")
    b = builder.add(OperationType.LOG_VALUE, "b")
    builder.pulse(event, "Triggered", a, "Execute")
    builder.pulse(a, "Executed", b, "Execute")
    builder.pulse(b, "Executed", a, "Execute")


class TestGuards:
    @pytest.mark.asyncio
    async def test_runtime_cycle_detected(self, registry, builder):
        engine = GraphEngine(registry=registry, config=make_config(max_cycle_depth=3))
        _loop_graph(builder)

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.ERROR
        assert state.error == TerminalReason.ERROR_RUNTIME_CYCLE_DETECTED
        assert state.visit_count("a") == 4

    @pytest.mark.asyncio
    async def test_step_ceiling(self, registry, builder):
        engine = GraphEngine(
            registry=registry, config=make_config(max_execution_steps=5, max_cycle_depth=100)
        )
        _loop_graph(builder)

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.error == TerminalReason.ERROR_MAX_STEPS_EXCEEDED
        assert state.path_node_ids() == ["event", "a", "b", "a", "b"]

    @pytest.mark.asyncio
    async def test_missing_pulse_target_fails(self, engine, builder):
        _, (a,) = log_chain(builder, "go", ["a"])
        builder.connections.append(
            Connection(
                id="dangling",
                from_node_id=a.id,
                from_port_id=a.output_port("Executed", PortType.EXECUTION).id,
                to_node_id="ghost",
                to_port_id="ghost_in",
            )
        )

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.error == TerminalReason.ERROR_TARGET_NODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_stop_request_halts_before_next_node(self, builder):
        bus = EventBus()
        engine = GraphEngine(registry=builder.registry, config=make_config(), event_bus=bus)
        log_chain(builder, "go", ["a", "b", "c"])
        state = engine.new_run_state()

        async def stop_at_b(event):
            state.request_stop()

        bus.subscribe([EventType.NODE_PULSED], stop_at_b, filter_node="b")

        final = await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, run_state=state
        )

        assert final is state
        assert final.status == RunStatus.STOPPED
        assert final.error == TerminalReason.MANUAL_STOP
        assert final.path_node_ids() == ["event", "a", "b"]
        assert 'LOG: "c"' not in logged_values(final)

    @pytest.mark.asyncio
    async def test_failed_pull_fails_the_dispatch(self, engine, builder):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        divide = builder.add(OperationType.DIVIDE, "div")
        builder.override(divide, "Dividend", 1)
        builder.override(divide, "Divisor", 0)
        log = builder.add(OperationType.LOG_VALUE, "log")
        builder.pulse(event, "Triggered", log, "Execute")
        builder.wire(divide, "Quotient", log, "Input")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.ERROR
        assert state.error == TerminalReason.ERROR_DIVISION_BY_ZERO
        assert log_messages(state, "Sub-resolution for")
        assert "div" not in state.path_node_ids()


# ---------------------------------------------------------------------------
# Graph size
# ---------------------------------------------------------------------------


class TestLargeGraphs:
    """Runs at the default limits; walks must not depend on Python's call depth."""

    @pytest.mark.asyncio
    async def test_long_chain_completes(self, engine, builder):
        labels = [f"n{i}" for i in range(600)]
        log_chain(builder, "go", labels)

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.path_node_ids() == ["event", *labels]
        assert len(logged_values(state)) == 600

    @pytest.mark.asyncio
    async def test_wide_ring_stops_at_step_ceiling(self, engine, builder):
        _, logs = log_chain(builder, "go", [f"n{i}" for i in range(200)])
        builder.pulse(logs[-1], "Executed", logs[0], "Execute")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.ERROR
        assert state.error == TerminalReason.ERROR_MAX_STEPS_EXCEEDED
        assert state.steps_taken == 1000
        assert state.visit_count("n0") == 5

    @pytest.mark.asyncio
    async def test_fan_out_walks_each_branch_before_its_sibling(self, engine, builder):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        first = builder.add(OperationType.LOG_VALUE, "first")
        nested = builder.add(OperationType.LOG_VALUE, "nested")
        second = builder.add(OperationType.LOG_VALUE, "second")
        builder.pulse(event, "Triggered", first, "Execute")
        builder.pulse(event, "Triggered", second, "Execute")
        builder.pulse(first, "Executed", nested, "Execute")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.path_node_ids() == ["event", "first", "nested", "second"]


# ---------------------------------------------------------------------------
# Breakpoints and stepping
# ---------------------------------------------------------------------------


class TestBreakpoints:
    @pytest.mark.asyncio
    async def test_breakpoint_pauses_before_node(self, engine, builder):
        log_chain(builder, "go", ["a", "b", "c"])

        state = await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, breakpoints={"b"}
        )

        assert state.status == RunStatus.PAUSED
        assert state.paused_node_id == "b"
        assert state.path_node_ids() == ["event", "a"]
        assert logged_values(state) == ['LOG: "a"']

    @pytest.mark.asyncio
    async def test_continue_runs_to_completion(self, engine, builder):
        log_chain(builder, "go", ["a", "b", "c"])
        paused = await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, breakpoints={"b"}
        )

        resumed = await engine.continue_dispatch(paused, builder.nodes, builder.connections)

        assert resumed is not paused
        assert paused.status == RunStatus.PAUSED
        assert resumed.status == RunStatus.COMPLETED
        assert resumed.path_node_ids() == ["b", "c"]
        assert logged_values(resumed) == ['LOG: "a"', 'LOG: "b"', 'LOG: "c"']

    @pytest.mark.asyncio
    async def test_step_over_pauses_after_one_node(self, engine, builder):
        log_chain(builder, "go", ["a", "b", "c"])
        paused = await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, breakpoints={"b"}
        )

        stepped = await engine.continue_dispatch(
            paused, builder.nodes, builder.connections, SteppingMode.STEP_OVER
        )

        assert stepped.status == RunStatus.PAUSED
        assert stepped.paused_node_id == "c"
        assert stepped.path_node_ids() == ["b"]

        finished = await engine.continue_dispatch(stepped, builder.nodes, builder.connections)

        assert finished.status == RunStatus.COMPLETED
        assert logged_values(finished) == ['LOG: "a"', 'LOG: "b"', 'LOG: "c"']

    @pytest.mark.asyncio
    async def test_continue_requires_paused_state(self, engine, builder):
        log_chain(builder, "go", ["a"])
        done = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        with pytest.raises(ValueError):
            await engine.continue_dispatch(done, builder.nodes, builder.connections)


# ---------------------------------------------------------------------------
# Stateful nodes
# ---------------------------------------------------------------------------


class TestStateAndChannels:
    def _state_graph(self, builder, **state_config):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        state_node = builder.add(OperationType.STATE, "hp", **state_config)
        builder.pulse(event, "Triggered", state_node, "Execute Action")
        return state_node

    @pytest.mark.asyncio
    async def test_state_set_persists_across_runs(self, engine, builder):
        store = GlobalStateStore()
        state_node = self._state_graph(builder, state_id="hp", initial_value=10)
        amount = builder.add(OperationType.VALUE_PROVIDER, "amount", value=42)
        builder.wire(amount, "Value", state_node, "Set Value")

        run = await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, run_state=engine.new_run_state(store)
        )
        read = await engine.resolve_output_for_node(
            state_node.id,
            out_port(state_node, "Current Value"),
            builder.nodes,
            builder.connections,
            run_state=engine.new_run_state(store),
        )

        assert run.status == RunStatus.COMPLETED
        assert store.get("hp") == 42
        assert "State 'hp' set to: 42" in log_messages(run)
        assert read.requested_value == 42

    @pytest.mark.asyncio
    async def test_state_reads_initial_value_until_set(self, engine, builder):
        state_node = self._state_graph(builder, state_id="hp", initial_value=10)

        result = await engine.resolve_output_for_node(
            state_node.id, out_port(state_node, "Current Value"), builder.nodes, builder.connections
        )

        assert result.requested_value == 10

    @pytest.mark.asyncio
    async def test_state_reset_restores_initial_value(self, engine, builder):
        store = GlobalStateStore({"hp": 3})
        state_node = self._state_graph(builder, state_id="hp", initial_value=10)
        builder.override(state_node, "Reset to Initial", True)
        builder.override(state_node, "Set Value", 99)

        await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, run_state=engine.new_run_state(store)
        )

        assert store.get("hp") == 10

    @pytest.mark.asyncio
    async def test_state_without_id_fails(self, engine, builder):
        self._state_graph(builder, state_id="  ")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.error == TerminalReason.ERROR_STATE_ID_MISSING

    @pytest.mark.asyncio
    async def test_channel_send_then_receive(self, engine, builder):
        store = GlobalStateStore()
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        send = builder.add(OperationType.SEND_DATA, "send", channel_name="damage")
        receive = builder.add(OperationType.RECEIVE_DATA, "receive", channel_name="damage")
        builder.override(send, "Data In", 9)
        builder.pulse(event, "Triggered", send, "Execute")

        await engine.dispatch_event(
            "go", None, builder.nodes, builder.connections, run_state=engine.new_run_state(store)
        )
        result = await engine.resolve_output_for_node(
            receive.id,
            out_port(receive, "Data Out"),
            builder.nodes,
            builder.connections,
            run_state=engine.new_run_state(store),
        )

        assert store.receive("damage") == 9
        assert result.requested_value == 9

    @pytest.mark.asyncio
    async def test_channel_without_name_fails(self, engine, builder):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        send = builder.add(OperationType.SEND_DATA, "send", channel_name="")
        builder.pulse(event, "Triggered", send, "Execute")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.error == TerminalReason.ERROR_CHANNEL_NAME_MISSING

    @pytest.mark.asyncio
    async def test_iterate_step_publishes_results(self, engine, builder, registry):
        event = builder.add(OperationType.ON_EVENT, "event", event_name="go")
        items = builder.add(OperationType.VALUE_PROVIDER, "items", value=[1, 2, 3])
        loop = builder.add_node(
            create_iterate_node(registry, sub_graph=times_ten_body(registry), node_id="loop")
        )
        log = builder.add(OperationType.LOG_VALUE, "log")
        builder.wire(items, "Value", loop, "Collection")
        builder.wire(loop, "Results", log, "Input")
        builder.pulse(event, "Triggered", loop, "Start Iteration")
        builder.pulse(loop, "Iteration Completed", log, "Execute")

        state = await engine.dispatch_event("go", None, builder.nodes, builder.connections)

        assert state.status == RunStatus.COMPLETED
        assert state.dispatch_context[f"loop_{out_port(loop, 'Results')}"] == [10, 20, 30]
        assert logged_values(state) == ["LOG: [10, 20, 30]"]
