"""
Pulse Dispatcher - Push-mode propagation of execution pulses.

An event fires every matching ON_EVENT node; each one's "Triggered" output
is walked depth-first, calling the registered execution step of every node
reached. A branch is fully walked before its sibling starts, and no two
nodes of one run execute concurrently.

Guards checked before a node runs, in order:
1. the run is no longer running (error, stopped, paused)
2. the run already took max_execution_steps steps
3. the node is organizational (comment/frame): skipped, nothing propagates
4. a breakpoint or the stepping mode asks to pause here
5. the node has been visited more than max_cycle_depth times
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from nodeflow.graph.errors import (
    MaxStepsExceededError,
    NodeFlowError,
    NodeOperationError,
    RuntimeCycleError,
    TargetNotFoundError,
    TerminalReason,
)
from nodeflow.graph.evaluator import DataEvaluator, check_step_budget
from nodeflow.graph.model import (
    MAX_EXECUTION_STEPS,
    Connection,
    Node,
    NodeKind,
    OperationType,
    PortType,
    context_key,
    find_node,
)
from nodeflow.graph.node import (
    FiredOutput,
    PullFn,
    ResolveContext,
    StepContext,
    StepResult,
    fire_port,
)
from nodeflow.graph.registry import NodeRegistry
from nodeflow.runtime.event_bus import EventBus
from nodeflow.runtime.run_state import LogSeverity, RunState, SteppingMode

logger = logging.getLogger(__name__)

_SINGLE_STEP_MODES = (SteppingMode.STEP_OVER, SteppingMode.STEP_INTO)


@dataclass
class DispatchSession:
    """Pause bookkeeping for one dispatch or continuation call."""

    breakpoints: frozenset[str] = field(default_factory=frozenset)
    stepping_mode: SteppingMode | None = None
    resume_node_id: str | None = None  # the paused node a continuation starts from
    nodes_executed: int = 0

    def should_pause(self, node_id: str) -> bool:
        if node_id == self.resume_node_id:
            self.resume_node_id = None
            return False
        if self.stepping_mode in _SINGLE_STEP_MODES and self.nodes_executed > 0:
            return True
        return node_id in self.breakpoints


class PulseDispatcher:
    """Walks execution connections and runs node steps."""

    def __init__(
        self,
        registry: NodeRegistry,
        evaluator: DataEvaluator,
        resolve: PullFn | None = None,
        max_execution_steps: int = MAX_EXECUTION_STEPS,
        event_bus: EventBus | None = None,
    ):
        self.registry = registry
        self.evaluator = evaluator
        self.resolve = resolve
        self.max_execution_steps = max_execution_steps
        self.event_bus = event_bus
        self.logger = logger

    async def trigger_event_flow(
        self,
        event_name: str,
        payload: Any,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState,
        session: DispatchSession | None = None,
    ) -> RunState:
        """Fire every ON_EVENT node listening for `event_name`."""
        session = session or DispatchSession()

        if not event_name or not event_name.strip():
            run_state.fail(
                TerminalReason.ERROR_EVENT_NAME_MISSING, "Cannot dispatch an event without a name"
            )
            return run_state

        entries = [
            node
            for node in nodes
            if node.kind == NodeKind.ATOMIC
            and node.operation_type == OperationType.ON_EVENT
            and node.config.get("event_name") == event_name
        ]
        if not entries:
            run_state.add_log(f"No ON_EVENT node listens for '{event_name}'.", LogSeverity.DEBUG)
            return run_state

        self.logger.info(f"📣 Event '{event_name}' matched {len(entries)} entry node(s)")
        context = run_state.dispatch_context

        for entry in entries:
            if not run_state.is_running:
                break
            try:
                check_step_budget(run_state, self.max_execution_steps, f"at node '{entry.id}'")
            except MaxStepsExceededError as e:
                run_state.fail(e.reason, str(e), entry.id)
                break

            await self._seed_payload(entry, payload, nodes, context, run_state)
            if not run_state.is_running:
                break

            run_state.record_step(entry)
            await self._emit_node_pulse(run_state, entry)

            triggered = entry.output_port("Triggered", PortType.EXECUTION)
            if triggered is None:
                continue
            await self._propagate(
                entry, fire_port(entry, triggered, connections), nodes, connections, context,
                run_state, session,
            )

        return run_state

    async def step(
        self,
        node_id: str,
        triggered_by: str | None,
        nodes: list[Node],
        connections: list[Connection],
        context: dict[str, Any],
        run_state: RunState,
        session: DispatchSession | None = None,
    ) -> None:
        """Run one node's execution step, then walk everything it fired."""
        session = session or DispatchSession()
        executed = await self._execute(
            node_id, triggered_by, nodes, connections, context, run_state, session
        )
        if executed is not None:
            node, result = executed
            await self._propagate(node, result, nodes, connections, context, run_state, session)

    async def _propagate(
        self,
        node: Node,
        result: StepResult,
        nodes: list[Node],
        connections: list[Connection],
        context: dict[str, Any],
        run_state: RunState,
        session: DispatchSession,
    ) -> None:
        # LIFO of (source, fired output); outputs pushed reversed so siblings keep their order
        pending = [(node, fired) for fired in reversed(result.next_exec_outputs)]
        while pending and run_state.is_running:
            source, fired = pending.pop()
            await self._emit_connection_pulse(run_state, source, fired)
            executed = await self._execute(
                fired.target_node_id,
                fired.target_port_id,
                nodes,
                connections,
                context,
                run_state,
                session,
            )
            if executed is None:
                continue
            target, outcome = executed
            pending.extend((target, nxt) for nxt in reversed(outcome.next_exec_outputs))

    async def _execute(
        self,
        node_id: str,
        triggered_by: str | None,
        nodes: list[Node],
        connections: list[Connection],
        context: dict[str, Any],
        run_state: RunState,
        session: DispatchSession,
    ) -> tuple[Node, StepResult] | None:
        """Guard, then run a single node. None when nothing should propagate."""
        if not run_state.is_running:
            return None

        try:
            check_step_budget(run_state, self.max_execution_steps, f"at node '{node_id}'")

            node = find_node(nodes, node_id)
            if node is None:
                raise TargetNotFoundError(f"Pulse target '{node_id}' does not exist")
            if node.is_organizational:
                return None

            if session.should_pause(node.id):
                run_state.pause_at(node.id)
                self.logger.info(f"⏸ Paused before node: {node.label}")
                return None

            run_state.record_step(node)
            await self._emit_node_pulse(run_state, node)

            if run_state.visit_count(node.id) > run_state.max_cycle_depth:
                raise RuntimeCycleError(
                    f"Node '{node.label}' visited more than {run_state.max_cycle_depth} times"
                )

            result = await self._run_step(node, triggered_by, nodes, connections, context, run_state)
        except NodeFlowError as e:
            run_state.fail(e.reason, str(e), node_id)
            return None

        session.nodes_executed += 1
        return node, result

    async def _run_step(
        self,
        node: Node,
        triggered_by: str | None,
        nodes: list[Node],
        connections: list[Connection],
        context: dict[str, Any],
        run_state: RunState,
    ) -> StepResult:
        definition = self.registry.get(node.operation_type)
        if definition is None or definition.process_step is None:
            return self._pass_through(node, connections)
        try:
            return await definition.step(
                StepContext(
                    node=node,
                    triggered_by=triggered_by,
                    all_nodes=nodes,
                    connections=connections,
                    context=context,
                    run_state=run_state,
                    definition=definition,
                    resolve=self.resolve,
                    evaluator=self.evaluator,
                )
            )
        except Exception as e:
            reason = e.reason if isinstance(e, NodeFlowError) else TerminalReason.ERROR_OPERATION_FAILED
            self.logger.debug(f"Step for '{node.label}' raised", exc_info=True)
            raise NodeOperationError(f"Error in node '{node.label}': {e}", reason) from e

    async def _seed_payload(
        self,
        entry: Node,
        payload: Any,
        nodes: list[Node],
        context: dict[str, Any],
        run_state: RunState,
    ) -> None:
        """Place the event payload in context through the ON_EVENT resolver."""
        payload_port = entry.output_port("Payload")
        definition = self.registry.get(OperationType.ON_EVENT)
        if payload_port is None or definition is None:
            return

        ctx = ResolveContext(
            node=entry,
            inputs={},
            context={**context, context_key(entry.id, payload_port.id): payload},
            run_state=run_state,
            all_nodes=nodes,
            evaluator=self.evaluator,
        )
        try:
            context.update(await definition.resolve(ctx))
        except Exception as e:
            reason = e.reason if isinstance(e, NodeFlowError) else TerminalReason.ERROR_OPERATION_FAILED
            run_state.fail(reason, f"Error in node '{entry.label}': {e}", entry.id)

    @staticmethod
    def _pass_through(node: Node, connections: list[Connection]) -> StepResult:
        """Fire the first execution output of a node with no step function."""
        exec_outputs = node.execution_outputs()
        if not exec_outputs:
            return StepResult()
        return fire_port(node, exec_outputs[0], connections)

    async def _emit_node_pulse(self, run_state: RunState, node: Node) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit_node_pulsed(
                run_id=run_state.run_id,
                node_id=node.id,
                operation_type=node.operation_type.value,
            )

    async def _emit_connection_pulse(
        self, run_state: RunState, node: Node, fired: FiredOutput
    ) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit_connection_pulsed(
                run_id=run_state.run_id,
                connection_id=fired.connection_id,
                source_node_id=node.id,
                target_node_id=fired.target_node_id,
            )
