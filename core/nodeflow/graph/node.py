"""
Node Protocol - The contract every operation type satisfies.

A NodeDefinition bundles, per OperationType:
- a port generator: (node_id, config) -> (input_ports, output_ports)
- an optional data resolver: ResolveContext -> {context_key: value}
- an optional execution step: StepContext -> StepResult

Both functions may be plain or async. The engine awaits whatever they
return and depends on nothing else about a node type.

Resolvers must only write context keys scoped to their own node
("{node.id}_{port_id}"); the evaluator rejects anything else.
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nodeflow.graph.errors import NodeOperationError, SubResolutionError
from nodeflow.graph.model import (
    Connection,
    Node,
    NodeKind,
    OperationType,
    Port,
    PortType,
    context_key,
    find_incoming,
    find_outgoing,
)
from nodeflow.runtime.run_state import LogSeverity, RunState, RunStatus

if TYPE_CHECKING:
    from nodeflow.graph.engine import ExecutionResult
    from nodeflow.graph.evaluator import DataEvaluator

PortGenerator = Callable[[str, dict[str, Any]], tuple[list[Port], list[Port]]]
ResolveFn = Callable[["ResolveContext"], dict[str, Any] | Awaitable[dict[str, Any]]]
StepFn = Callable[["StepContext"], "StepResult | Awaitable[StepResult]"]
PullFn = Callable[..., Awaitable["ExecutionResult"]]


@dataclass
class IterationContext:
    """Current item and index for nodes inside an ITERATE sub-graph."""

    item: Any
    index: int


@dataclass
class FiredOutput:
    """An execution output that fired, addressed to one connection."""

    port_id: str
    target_node_id: str
    target_port_id: str
    connection_id: str


@dataclass
class StepResult:
    """What an execution step produced."""

    next_exec_outputs: list[FiredOutput] = field(default_factory=list)


def fire_port(node: Node, port: Port, connections: list[Connection]) -> StepResult:
    """Fire every connection leaving an execution output port."""
    return StepResult(
        next_exec_outputs=[
            FiredOutput(
                port_id=port.id,
                target_node_id=conn.to_node_id,
                target_port_id=conn.to_port_id,
                connection_id=conn.id,
            )
            for conn in find_outgoing(connections, node.id, port.id)
        ]
    )


@dataclass
class ResolveContext:
    """Everything a data resolver receives."""

    node: Node
    inputs: dict[str, Any]  # input port id -> resolved value
    context: dict[str, Any]  # running execution context
    run_state: RunState
    all_nodes: list[Node]
    iteration: IterationContext | None = None
    evaluator: DataEvaluator | None = None  # for composite nodes

    def input(self, port_name: str) -> Any:
        port = self.node.input_port(port_name)
        if port is None:
            raise NodeOperationError(
                f"Input port '{port_name}' not found on node '{self.node.label}'"
            )
        return self.inputs.get(port.id)

    def output_key(self, port_name: str, port_type: PortType = PortType.DATA) -> str:
        try:
            return self.node.output_key(port_name, port_type)
        except KeyError as e:
            raise NodeOperationError(str(e.args[0])) from e

    def log(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
        self.run_state.add_log(message, severity, self.node.id)


@dataclass
class StepContext:
    """Everything an execution step receives."""

    node: Node
    triggered_by: str | None  # input execution port id, None at entry points
    all_nodes: list[Node]
    connections: list[Connection]
    context: dict[str, Any]  # dispatch-wide data context
    run_state: RunState
    definition: NodeDefinition | None = None
    resolve: PullFn | None = None
    evaluator: DataEvaluator | None = None

    def log(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
        self.run_state.add_log(message, severity, self.node.id)

    def is_connected(self, port_name: str) -> bool:
        port = self.node.input_port(port_name)
        return port is not None and find_incoming(self.connections, self.node.id, port.id) is not None

    async def pull(self, port_name: str) -> Any:
        """
        Resolve a DATA input on demand.

        Connected inputs are resolved fresh through the engine with a forked
        run state seeded by the dispatch context; unconnected inputs fall back
        to their override, then to the operation default, then None.
        """
        port = self.node.input_port(port_name)
        if port is None:
            raise NodeOperationError(
                f"Input port '{port_name}' not found on node '{self.node.label}'"
            )

        conn = find_incoming(self.connections, self.node.id, port.id)
        if conn is None:
            value = self.node.input_override(port.id)
            if value is None and self.definition is not None:
                value = self.definition.defaults_for(self.node).get(port.name)
            return value

        if self.resolve is None:
            raise NodeOperationError(
                f"No resolver available to pull '{port_name}' on node '{self.node.label}'"
            )

        result = await self.resolve(
            conn.from_node_id,
            conn.from_port_id,
            self.all_nodes,
            self.connections,
            run_state=self.run_state.fork(),
            seed_context=dict(self.context),
        )
        sub_state = result.final_run_state
        for entry in sub_state.log:
            if entry.severity == LogSeverity.ERROR:
                entry = entry.model_copy(
                    update={
                        "message": f"Sub-resolution for {self.node.label} '{port_name}': {entry.message}"
                    }
                )
            self.run_state.log.append(entry)

        if sub_state.status == RunStatus.ERROR:
            raise SubResolutionError(
                f"Could not resolve '{port_name}' for node '{self.node.label}'",
                reason=sub_state.error,
            )

        self.context[context_key(conn.from_node_id, conn.from_port_id)] = result.requested_value
        return result.requested_value

    def fire(self, port_name: str) -> StepResult:
        """Fire a named execution output port."""
        port = self.node.output_port(port_name, PortType.EXECUTION)
        if port is None:
            raise NodeOperationError(
                f"Execution output '{port_name}' not found on node '{self.node.label}'"
            )
        return fire_port(self.node, port, self.connections)


@dataclass
class NodeDefinition:
    """Registry entry for one operation type."""

    operation_type: OperationType
    name: str
    port_generator: PortGenerator
    description: str = ""
    category: str = "Utilities"
    default_config: dict[str, Any] = field(default_factory=dict)
    resolve_outputs: ResolveFn | None = None
    process_step: StepFn | None = None
    input_defaults: Callable[[Node], dict[str, Any]] | None = None  # port name -> default
    kind: NodeKind = NodeKind.ATOMIC

    def generate_ports(
        self, node_id: str, config: dict[str, Any] | None = None
    ) -> tuple[list[Port], list[Port]]:
        return self.port_generator(node_id, self.merged_config(config))

    def merged_config(self, config: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fresh copy of default_config with `config` laid over it."""
        return {**copy.deepcopy(self.default_config), **(config or {})}

    def defaults_for(self, node: Node) -> dict[str, Any]:
        if self.input_defaults is None:
            return {}
        return self.input_defaults(node)

    async def resolve(self, ctx: ResolveContext) -> dict[str, Any]:
        if self.resolve_outputs is None:
            return {}
        result = self.resolve_outputs(ctx)
        if inspect.isawaitable(result):
            result = await result
        return result or {}

    async def step(self, ctx: StepContext) -> StepResult:
        if self.process_step is None:
            return StepResult()
        result = self.process_step(ctx)
        if inspect.isawaitable(result):
            result = await result
        return result or StepResult()
