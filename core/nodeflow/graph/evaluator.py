"""
Data Evaluator - Pull-mode evaluation of a resolved dependency plan.

Walks a topologically ordered node list, resolves each node's DATA inputs
and calls its registered resolver, accumulating a flat execution context
keyed by "{node_id}_{port_id}".

Input resolution order for every DATA input port:
1. the upstream value already in context, when the port is connected
2. the literal in config["input_port_overrides"][port_id]
3. the operation default from the node definition
4. None

Any exception raised by a resolver is fatal to the whole evaluation: it is
logged, the run moves to error and no further node is evaluated.
"""

import logging
from typing import Any

from nodeflow.graph.errors import (
    MaxStepsExceededError,
    NodeFlowError,
    NodeOperationError,
    RuntimeCycleError,
    TerminalReason,
)
from nodeflow.graph.model import (
    MAX_EXECUTION_STEPS,
    Connection,
    Node,
    SubGraph,
    context_key,
    find_incoming,
)
from nodeflow.graph.node import IterationContext, NodeDefinition, ResolveContext
from nodeflow.graph.registry import NodeRegistry
from nodeflow.graph.resolver import DependencyPlan, resolve_dependencies
from nodeflow.runtime.run_state import RunState

logger = logging.getLogger(__name__)


def check_step_budget(run_state: RunState, max_execution_steps: int, where: str) -> None:
    """Raise MaxStepsExceededError once the run has used its step allowance."""
    if run_state.steps_taken >= max_execution_steps:
        raise MaxStepsExceededError(f"Step limit of {max_execution_steps} reached {where}")


class DataEvaluator:
    """
    Evaluates dependency plans against a node registry.

    The step ceiling and the sub-graph depth ceiling both apply here, so
    data recursion is bounded the same way execution pulses are.
    """

    def __init__(self, registry: NodeRegistry, max_execution_steps: int = MAX_EXECUTION_STEPS):
        self.registry = registry
        self.max_execution_steps = max_execution_steps
        self.logger = logger

    def resolve_inputs(
        self,
        node: Node,
        connections: list[Connection],
        context: dict[str, Any],
        definition: NodeDefinition | None = None,
    ) -> dict[str, Any]:
        """Resolve every DATA input of `node`. Returns {port_id: value}."""
        defaults = definition.defaults_for(node) if definition is not None else {}
        inputs: dict[str, Any] = {}
        for port in node.data_inputs():
            conn = find_incoming(connections, node.id, port.id)
            if conn is not None:
                inputs[port.id] = context.get(context_key(conn.from_node_id, conn.from_port_id))
                continue
            value = node.input_override(port.id)
            if value is None:
                value = defaults.get(port.name)
            inputs[port.id] = value
        return inputs

    async def evaluate(
        self,
        plan: DependencyPlan,
        nodes: list[Node],
        connections: list[Connection],
        run_state: RunState,
        seed_context: dict[str, Any] | None = None,
        iteration: IterationContext | None = None,
    ) -> dict[str, Any]:
        """
        Evaluate `plan.order` and return the resulting execution context.

        Stops early as soon as the run leaves the running status.
        """
        context: dict[str, Any] = dict(seed_context or {})
        node_index = {node.id: node for node in nodes}

        for node_id in plan.order:
            if not run_state.is_running:
                break

            node = node_index.get(node_id)
            if node is None or node.is_organizational:
                continue

            try:
                check_step_budget(run_state, self.max_execution_steps, f"before node '{node.label}'")
                run_state.record_step(node)
                partial = await self._resolve_node(node, nodes, connections, context, run_state, iteration)
            except NodeFlowError as e:
                run_state.fail(e.reason, str(e), node.id)
                break

            context.update(partial)

        return context

    async def _resolve_node(
        self,
        node: Node,
        nodes: list[Node],
        connections: list[Connection],
        context: dict[str, Any],
        run_state: RunState,
        iteration: IterationContext | None,
    ) -> dict[str, Any]:
        definition = self.registry.get(node.operation_type)
        if definition is None:
            raise NodeOperationError(f"No node definition registered for '{node.operation_type}'")

        inputs = self.resolve_inputs(node, connections, context, definition)
        ctx = ResolveContext(
            node=node,
            inputs=inputs,
            context=context,
            run_state=run_state,
            all_nodes=nodes,
            iteration=iteration,
            evaluator=self,
        )
        try:
            partial = await definition.resolve(ctx)
            self._check_scoped(node, partial)
        except Exception as e:
            reason = e.reason if isinstance(e, NodeFlowError) else TerminalReason.ERROR_OPERATION_FAILED
            self.logger.debug(f"Resolver for '{node.label}' raised", exc_info=True)
            raise NodeOperationError(f"Error in node '{node.label}': {e}", reason) from e
        return partial

    async def evaluate_sub_graph(
        self,
        owner: Node,
        sub_graph: SubGraph,
        target_node_id: str,
        target_port_id: str,
        run_state: RunState,
        seed_context: dict[str, Any] | None = None,
        iteration: IterationContext | None = None,
    ) -> Any:
        """
        Resolve one output inside a composite node's sub-graph.

        Each nesting level counts against `run_state.max_cycle_depth`.

        Raises:
            RuntimeCycleError: Nesting exceeded the depth ceiling
            StructuralCycleError: The sub-graph has a data cycle
        """
        run_state.cycle_depth += 1
        try:
            if run_state.cycle_depth > run_state.max_cycle_depth:
                raise RuntimeCycleError(
                    f"Sub-graph nesting under '{owner.label}' exceeded depth "
                    f"{run_state.max_cycle_depth}"
                )
            plan = resolve_dependencies(target_node_id, sub_graph.nodes, sub_graph.connections)
            context = await self.evaluate(
                plan,
                sub_graph.nodes,
                sub_graph.connections,
                run_state,
                seed_context=seed_context,
                iteration=iteration,
            )
            return context.get(context_key(target_node_id, target_port_id))
        finally:
            run_state.cycle_depth -= 1

    @staticmethod
    def _check_scoped(node: Node, partial: dict[str, Any]) -> None:
        prefix = f"{node.id}_"
        foreign = [key for key in partial if not key.startswith(prefix)]
        if foreign:
            raise NodeOperationError(f"Resolver wrote context keys outside its own node: {foreign}")
