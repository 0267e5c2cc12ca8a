"""
Graph Engine - Entry points for pull resolution and push dispatch.

The engine:
1. Takes a graph snapshot (nodes + connections) and a fresh or continued RunState
2. Resolves a requested output (pull) or dispatches an event (push)
3. Publishes run lifecycle and pulse telemetry to an optional EventBus
4. Returns the final RunState (and, for pulls, the requested value)

Errors never escape as exceptions from the entry points: they end the run
with status "error" and a reason tag, and the caller inspects the state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from nodeflow.config import EngineConfig
from nodeflow.graph.dispatcher import DispatchSession, PulseDispatcher
from nodeflow.graph.errors import (
    ExecutionPortRequestedError,
    NodeFlowError,
    TargetNotFoundError,
    TargetPortNotFoundError,
)
from nodeflow.graph.evaluator import DataEvaluator
from nodeflow.graph.model import Connection, Node, context_key, find_node
from nodeflow.graph.registry import NodeRegistry
from nodeflow.graph.resolver import resolve_dependencies
from nodeflow.observability import set_trace_context
from nodeflow.runtime.event_bus import EventBus
from nodeflow.runtime.run_state import LogSeverity, RunState, RunStatus, SteppingMode
from nodeflow.runtime.state_store import GlobalStateStore

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of a pull-mode resolution."""

    requested_value: Any = None
    resolved_states: dict[str, Any] = field(default_factory=dict)
    final_run_state: RunState = field(default_factory=RunState)

    @property
    def success(self) -> bool:
        return self.final_run_state.status != RunStatus.ERROR


class GraphEngine:
    """
    Runs node graphs against a node registry.

    Example:
        engine = GraphEngine()
        result = await engine.resolve_output_for_node("add", "add_out_sum_2", nodes, connections)
        result.requested_value

        state = await engine.dispatch_event("go", {"hp": 3}, nodes, connections)
        state.status, state.log
    """

    def __init__(
        self,
        registry: NodeRegistry | None = None,
        config: EngineConfig | None = None,
        event_bus: EventBus | None = None,
    ):
        self.config = config or EngineConfig()
        if registry is None:
            from nodeflow.nodes import build_default_registry

            registry = build_default_registry(self.config)

        self.registry = registry
        self.event_bus = event_bus
        self.evaluator = DataEvaluator(
            registry, max_execution_steps=self.config.max_execution_steps
        )
        self.dispatcher = PulseDispatcher(
            registry,
            self.evaluator,
            resolve=self.resolve_output_for_node,
            max_execution_steps=self.config.max_execution_steps,
            event_bus=event_bus,
        )
        self.logger = logger

    def new_run_state(self, global_state_store: GlobalStateStore | None = None) -> RunState:
        """Fresh idle state using this engine's limits."""
        return RunState(
            global_state_store=(
                global_state_store if global_state_store is not None else GlobalStateStore()
            ),
            max_cycle_depth=self.config.max_cycle_depth,
        )

    # === PULL ===

    async def resolve_output_for_node(
        self,
        target_node_id: str,
        target_port_id: str,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState | None = None,
        seed_context: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Resolve one DATA output by evaluating its dependency subgraph.

        Args:
            target_node_id: Node owning the requested output
            target_port_id: Output port to resolve
            nodes: Graph nodes
            connections: Graph connections
            run_state: Seed state; idle states are started, running states
                (forks made for on-demand pulls) are used as-is
            seed_context: Values already known, e.g. a dispatch context

        Returns:
            ExecutionResult with the value, the full context and the final state
        """
        run_state = run_state if run_state is not None else self.new_run_state()
        top_level = run_state.status == RunStatus.IDLE
        if not run_state.is_running:
            run_state.start()

        if top_level:
            set_trace_context(run_id=run_state.run_id, target_node_id=target_node_id)
            await self._emit_started(run_state, "resolve", target_node_id)

        result = await self._resolve(
            target_node_id, target_port_id, nodes, connections, run_state, seed_context
        )
        run_state.complete()

        if top_level:
            await self._emit_finished(run_state)
        return result

    async def _resolve(
        self,
        target_node_id: str,
        target_port_id: str,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState,
        seed_context: dict[str, Any] | None,
    ) -> ExecutionResult:
        node = find_node(nodes, target_node_id)
        try:
            if node is None:
                raise TargetNotFoundError(f"Node '{target_node_id}' is not in the graph")

            port = node.get_output_port(target_port_id)
            if port is None:
                raise TargetPortNotFoundError(
                    f"Node '{node.label}' has no output port '{target_port_id}'"
                )
            if port.is_execution:
                raise ExecutionPortRequestedError(
                    f"Port '{port.name}' on node '{node.label}' is an execution port"
                )

            run_state.add_log(
                f"Starting DATA resolution for node '{node.label}', port '{port.name}'.",
                LogSeverity.DEBUG,
                node.id,
            )
            plan = resolve_dependencies(target_node_id, nodes, connections)
        except NodeFlowError as e:
            run_state.fail(e.reason, str(e), node.id if node is not None else None)
            return ExecutionResult(final_run_state=run_state)

        context = await self.evaluator.evaluate(
            plan, nodes, connections, run_state, seed_context=seed_context
        )
        return ExecutionResult(
            requested_value=context.get(context_key(target_node_id, target_port_id)),
            resolved_states=context,
            final_run_state=run_state,
        )

    # === PUSH ===

    async def dispatch_event(
        self,
        event_name: str,
        payload: Any,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState | None = None,
        breakpoints: set[str] | None = None,
    ) -> RunState:
        """
        Fire every ON_EVENT node listening for `event_name`.

        Args:
            event_name: Event to dispatch
            payload: Value exposed on the ON_EVENT nodes' Payload output
            nodes: Graph nodes
            connections: Graph connections
            run_state: Idle seed state (e.g. one sharing a session store)
            breakpoints: Node ids to pause before

        Returns:
            The final RunState
        """
        run_state = run_state if run_state is not None else self.new_run_state()
        run_state.start()
        set_trace_context(run_id=run_state.run_id, event_name=event_name)
        await self._emit_started(run_state, "dispatch", event_name)

        self.logger.info(f"🚀 Dispatching event: {event_name}")
        session = DispatchSession(
            breakpoints=frozenset(breakpoints or ()),
            stepping_mode=run_state.stepping_mode,
        )
        await self.dispatcher.trigger_event_flow(
            event_name, payload, nodes, connections, run_state, session
        )
        return await self._finish(run_state)

    async def dispatch_from_node(
        self,
        node_id: str,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState | None = None,
        breakpoints: set[str] | None = None,
    ) -> RunState:
        """Send a pulse straight into `node_id`, bypassing event lookup."""
        run_state = run_state if run_state is not None else self.new_run_state()
        run_state.start()
        set_trace_context(run_id=run_state.run_id, target_node_id=node_id)
        await self._emit_started(run_state, "dispatch", node_id)

        session = DispatchSession(
            breakpoints=frozenset(breakpoints or ()),
            stepping_mode=run_state.stepping_mode,
        )
        await self.dispatcher.step(
            node_id, None, nodes, connections, run_state.dispatch_context, run_state, session
        )
        return await self._finish(run_state)

    async def continue_dispatch(
        self,
        paused_state: RunState,
        nodes: list[Node],
        connections: list[Connection],
        stepping_mode: SteppingMode | str = SteppingMode.RUN,
        breakpoints: set[str] | None = None,
    ) -> RunState:
        """
        Resume a paused run from its paused node.

        A new RunState is built from `paused_state` (log, store and dispatch
        context carried forward); the paused state itself is left untouched.

        Raises:
            ValueError: If `paused_state` is not paused at a node
        """
        if paused_state.status != RunStatus.PAUSED or paused_state.paused_node_id is None:
            raise ValueError(
                f"Run {paused_state.run_id} is '{paused_state.status}', only paused runs continue"
            )

        run_state = RunState.continue_from(paused_state, stepping_mode)
        run_state.start()
        resume_node_id = paused_state.paused_node_id
        set_trace_context(run_id=run_state.run_id, target_node_id=resume_node_id)
        await self._emit_started(run_state, "dispatch", resume_node_id)

        self.logger.info(f"🔄 Resuming from paused node: {resume_node_id} ({run_state.stepping_mode})")
        run_state.add_log(
            f"Resuming from node '{resume_node_id}' ({run_state.stepping_mode}).",
            LogSeverity.INFO,
            resume_node_id,
        )
        session = DispatchSession(
            breakpoints=frozenset(breakpoints or ()),
            stepping_mode=run_state.stepping_mode,
            resume_node_id=resume_node_id,
        )
        await self.dispatcher.step(
            resume_node_id,
            None,
            nodes,
            connections,
            run_state.dispatch_context,
            run_state,
            session,
        )
        return await self._finish(run_state)

    # === HELPERS ===

    async def _finish(self, run_state: RunState) -> RunState:
        if run_state.complete():
            run_state.add_log("Execution completed.", LogSeverity.SUCCESS)
            self.logger.info(f"✓ Run complete after {run_state.steps_taken} step(s)")
        elif run_state.status == RunStatus.ERROR:
            self.logger.error(f"✗ Run failed: {run_state.error}")
        await self._emit_finished(run_state)
        return run_state

    async def _emit_started(self, run_state: RunState, mode: str, target: str | None) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit_run_started(run_state.run_id, mode, target)

    async def _emit_finished(self, run_state: RunState) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit_run_finished(
                run_id=run_state.run_id,
                status=run_state.status.value,
                error=run_state.error,
                paused_node_id=run_state.paused_node_id,
                steps=run_state.steps_taken,
            )
