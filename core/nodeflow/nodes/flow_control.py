"""
Flow control and hierarchy nodes.

ON_EVENT and STATE drive dispatches and persist values; INPUT_GRAPH /
OUTPUT_GRAPH are the placeholders a composite node maps its ports onto;
MOLECULAR and ITERATE evaluate their sub-graph through the evaluator they
receive in the resolve context, so every nesting level counts against the
run's depth ceiling.
"""

from typing import Any

from nodeflow.graph.errors import NodeOperationError, TerminalReason
from nodeflow.graph.model import (
    DEFAULT_MAX_ITERATIONS,
    LogicalCategory,
    Node,
    NodeKind,
    OperationType,
    Port,
    context_key,
    find_incoming,
)
from nodeflow.graph.node import (
    IterationContext,
    NodeDefinition,
    ResolveContext,
    StepContext,
    StepResult,
)
from nodeflow.graph.validator import categories_compatible
from nodeflow.nodes.arithmetic import to_number
from nodeflow.nodes.core import dump_value, no_ports
from nodeflow.nodes.factory import data_in, data_out, exec_in, exec_out
from nodeflow.runtime.run_state import LogSeverity


# === ON_EVENT ===


def on_event_ports(node_id: str, config: dict[str, Any]):
    return [], [exec_out(node_id, "Triggered"), data_out(node_id, "Payload")]


def resolve_on_event(ctx: ResolveContext) -> dict[str, Any]:
    # The dispatcher places the payload in context before this runs
    key = ctx.output_key("Payload")
    return {key: ctx.context.get(key)}


# === STATE ===


def state_id(node: Node) -> str:
    value = node.config.get("state_id")
    if not isinstance(value, str) or not value.strip():
        raise NodeOperationError(
            f"STATE node '{node.label}' is missing a state id",
            reason=TerminalReason.ERROR_STATE_ID_MISSING,
        )
    return value


def state_ports(node_id: str, config: dict[str, Any]):
    return (
        [
            exec_in(node_id, "Execute Action"),
            data_in(node_id, "Set Value", description="Value to set the state to."),
            data_in(
                node_id,
                "Reset to Initial",
                LogicalCategory.BOOLEAN,
                description="If true, sets state to initial value.",
            ),
        ],
        [exec_out(node_id, "Action Executed"), data_out(node_id, "Current Value")],
    )


def resolve_state(ctx: ResolveContext) -> dict[str, Any]:
    key = state_id(ctx.node)
    store = ctx.run_state.global_state_store
    value = store.get(key) if store.has(key) else ctx.node.config.get("initial_value")
    return {ctx.output_key("Current Value"): value}


async def state_step(ctx: StepContext) -> StepResult:
    key = state_id(ctx.node)
    store = ctx.run_state.global_state_store

    reset = await ctx.pull("Reset to Initial")
    new_value = await ctx.pull("Set Value")

    if reset is True:
        initial = ctx.node.config.get("initial_value")
        store.set(key, initial)
        ctx.log(f"State '{key}' reset to initial: {dump_value(initial)}")
    elif new_value is not None:
        store.set(key, new_value)
        ctx.log(f"State '{key}' set to: {dump_value(new_value)}")

    ctx.context[ctx.node.output_key("Current Value")] = store.get(key)
    return ctx.fire("Action Executed")


# === SUB-GRAPH PLACEHOLDERS ===


def input_graph_ports(node_id: str, config: dict[str, Any]):
    category = config.get("external_port_category") or LogicalCategory.ANY
    return [], [data_out(node_id, "Value", LogicalCategory(category))]


def resolve_input_graph(ctx: ResolveContext) -> dict[str, Any]:
    # Seeded by the owning composite node
    key = ctx.output_key("Value")
    return {key: ctx.context.get(key)}


def output_graph_ports(node_id: str, config: dict[str, Any]):
    category = config.get("external_port_category") or LogicalCategory.ANY
    return [data_in(node_id, "Value", LogicalCategory(category))], []


def loop_item_ports(node_id: str, config: dict[str, Any]):
    return [], [data_out(node_id, "Item"), data_out(node_id, "Index", LogicalCategory.NUMBER)]


def resolve_loop_item(ctx: ResolveContext) -> dict[str, Any]:
    if ctx.iteration is None:
        return {}
    return {
        ctx.output_key("Item"): ctx.iteration.item,
        ctx.output_key("Index"): ctx.iteration.index,
    }


def iteration_result_ports(node_id: str, config: dict[str, Any]):
    return [exec_in(node_id, "Commit Result"), data_in(node_id, "Value")], []


async def iteration_result_step(ctx: StepContext) -> StepResult:
    """Ends its execution chain; ITERATE collects results by pulling 'Value'."""
    value = await ctx.pull("Value")
    ctx.log(f"ITERATION_RESULT committed: {dump_value(value)}", LogSeverity.DEBUG)
    return StepResult()


# === MOLECULAR ===


def find_placeholder(node: Node, operation_type: OperationType, port: Port) -> Node | None:
    """The INPUT_GRAPH / OUTPUT_GRAPH node mapped to a composite port."""
    if node.sub_graph is None:
        return None
    for inner in node.sub_graph.nodes:
        if inner.operation_type != operation_type:
            continue
        if inner.config.get("external_port_name") != port.name:
            continue
        category = LogicalCategory(inner.config.get("external_port_category") or "any")
        if not categories_compatible(category, port.category):
            continue
        return inner
    return None


async def resolve_placeholder_input(
    ctx: ResolveContext,
    placeholder: Node,
    seed: dict[str, Any],
    iteration: IterationContext | None = None,
) -> Any:
    """Resolve the value feeding a placeholder's 'Value' input inside the sub-graph."""
    port = placeholder.input_port("Value")
    if port is None:
        return None
    sub_graph = ctx.node.sub_graph
    conn = find_incoming(sub_graph.connections, placeholder.id, port.id)
    if conn is None:
        return placeholder.input_override(port.id)
    if ctx.evaluator is None:
        raise NodeOperationError(f"No evaluator available for sub-graph of '{ctx.node.label}'")
    return await ctx.evaluator.evaluate_sub_graph(
        ctx.node,
        sub_graph,
        conn.from_node_id,
        conn.from_port_id,
        ctx.run_state,
        seed_context=seed,
        iteration=iteration,
    )


async def resolve_molecular(ctx: ResolveContext) -> dict[str, Any]:
    """
    Map composite inputs onto INPUT_GRAPH placeholders, then resolve every
    OUTPUT_GRAPH placeholder and lift its value onto the matching output.
    """
    node = ctx.node
    if node.sub_graph is None:
        return {}

    seed: dict[str, Any] = {}
    for port in node.data_inputs():
        placeholder = find_placeholder(node, OperationType.INPUT_GRAPH, port)
        if placeholder is None:
            continue
        value_port = placeholder.output_port("Value")
        if value_port is not None:
            seed[context_key(placeholder.id, value_port.id)] = ctx.inputs.get(port.id)

    outputs: dict[str, Any] = {}
    for port in node.data_outputs():
        placeholder = find_placeholder(node, OperationType.OUTPUT_GRAPH, port)
        if placeholder is None:
            continue
        value = await resolve_placeholder_input(ctx, placeholder, seed, ctx.iteration)
        if not ctx.run_state.is_running:
            break
        outputs[context_key(node.id, port.id)] = value

    return outputs


# === ITERATE ===


def iterate_ports(node_id: str, config: dict[str, Any]):
    max_iterations = config.get("max_iterations", DEFAULT_MAX_ITERATIONS)
    return (
        [
            exec_in(node_id, "Start Iteration"),
            data_in(node_id, "Collection", LogicalCategory.ARRAY),
            data_in(
                node_id,
                "Max Iterations",
                LogicalCategory.NUMBER,
                description=f"Overrides the default when set. Default: {max_iterations}",
            ),
        ],
        [
            exec_out(node_id, "Iteration Completed"),
            data_out(node_id, "Results", LogicalCategory.ARRAY),
            data_out(
                node_id,
                "Completed Status",
                LogicalCategory.BOOLEAN,
                description="True if every item was processed.",
            ),
        ],
    )


def iterate_defaults(node: Node) -> dict[str, Any]:
    return {"Max Iterations": node.config.get("max_iterations", DEFAULT_MAX_ITERATIONS)}


async def run_iterations(
    ctx: ResolveContext, collection: Any, max_iterations: Any
) -> tuple[list[Any], bool]:
    """
    Evaluate the body once per item.

    Returns:
        (results, completed) where completed is True only if every item
        was processed without the run halting
    """
    node = ctx.node
    if not isinstance(collection, list):
        raise NodeOperationError(
            f"ITERATE 'Collection' must be an array, got {type(collection).__name__}",
            reason=TerminalReason.ERROR_INVALID_ITERATION_COLLECTION,
        )
    limit = int(to_number(max_iterations, "ITERATE"))

    result_node = next(
        (
            inner
            for inner in (node.sub_graph.nodes if node.sub_graph is not None else [])
            if inner.operation_type == OperationType.ITERATION_RESULT
        ),
        None,
    )
    if result_node is None:
        ctx.log("ITERATE has no ITERATION_RESULT node; results will be empty.", LogSeverity.DEBUG)

    results: list[Any] = []
    for index, item in enumerate(collection[: max(limit, 0)]):
        value = None
        if result_node is not None:
            value = await resolve_placeholder_input(
                ctx, result_node, {}, IterationContext(item=item, index=index)
            )
        if not ctx.run_state.is_running:
            return results, False
        results.append(value)

    if len(collection) > limit:
        ctx.log(
            f"ITERATE stopped after {limit} of {len(collection)} item(s) (max iterations).",
            LogSeverity.DEBUG,
        )
    return results, len(results) == len(collection)


async def resolve_iterate(ctx: ResolveContext) -> dict[str, Any]:
    results, completed = await run_iterations(
        ctx, ctx.input("Collection"), ctx.input("Max Iterations")
    )
    return {
        ctx.output_key("Results"): results,
        ctx.output_key("Completed Status"): completed,
    }


async def iterate_step(ctx: StepContext) -> StepResult:
    """Run the loop when pulsed, publish the outputs to the dispatch context, then fire."""
    collection = await ctx.pull("Collection")
    max_iterations = await ctx.pull("Max Iterations")

    resolve_ctx = ResolveContext(
        node=ctx.node,
        inputs={},
        context=ctx.context,
        run_state=ctx.run_state,
        all_nodes=ctx.all_nodes,
        evaluator=ctx.evaluator,
    )
    results, completed = await run_iterations(resolve_ctx, collection, max_iterations)
    if not ctx.run_state.is_running:
        return StepResult()

    ctx.context[ctx.node.output_key("Results")] = results
    ctx.context[ctx.node.output_key("Completed Status")] = completed
    ctx.log(f"ITERATE processed {len(results)} item(s).", LogSeverity.DEBUG)
    return ctx.fire("Iteration Completed")


def build_definitions(default_max_iterations: int = DEFAULT_MAX_ITERATIONS) -> list[NodeDefinition]:
    return [
        NodeDefinition(
            operation_type=OperationType.ON_EVENT,
            name="On Event",
            description="Listens for a named external event.",
            category="Values & Inputs",
            default_config={"event_name": "myEvent"},
            port_generator=on_event_ports,
            resolve_outputs=resolve_on_event,
        ),
        NodeDefinition(
            operation_type=OperationType.STATE,
            name="State (Variable)",
            description="Maintains a persistent value in the session store.",
            category="Values & Inputs",
            default_config={"state_id": "myVariable", "initial_value": None},
            port_generator=state_ports,
            resolve_outputs=resolve_state,
            process_step=state_step,
        ),
        NodeDefinition(
            operation_type=OperationType.INPUT_GRAPH,
            name="Input Graph Port",
            description="An input port of a composite node's sub-graph.",
            category="Values & Inputs",
            default_config={
                "external_port_name": "Input",
                "external_port_category": LogicalCategory.ANY.value,
            },
            port_generator=input_graph_ports,
            resolve_outputs=resolve_input_graph,
        ),
        NodeDefinition(
            operation_type=OperationType.OUTPUT_GRAPH,
            name="Output Graph Port",
            description="An output port of a composite node's sub-graph.",
            category="Flow Control",
            default_config={
                "external_port_name": "Output",
                "external_port_category": LogicalCategory.ANY.value,
            },
            port_generator=output_graph_ports,
        ),
        NodeDefinition(
            operation_type=OperationType.LOOP_ITEM,
            name="Loop Item Provider",
            description="Current item and index inside an ITERATE sub-graph.",
            category="Values & Inputs",
            port_generator=loop_item_ports,
            resolve_outputs=resolve_loop_item,
        ),
        NodeDefinition(
            operation_type=OperationType.ITERATION_RESULT,
            name="Iteration Result",
            description="The value collected for each item of an ITERATE sub-graph.",
            category="Flow Control",
            port_generator=iteration_result_ports,
            process_step=iteration_result_step,
        ),
        NodeDefinition(
            operation_type=OperationType.MOLECULAR,
            name="Create Molecule",
            description="Encapsulates a sub-graph of nodes.",
            category="Containers & Hierarchy",
            port_generator=no_ports,
            resolve_outputs=resolve_molecular,
            kind=NodeKind.MOLECULAR,
        ),
        NodeDefinition(
            operation_type=OperationType.ITERATE,
            name="Iterate (Loop)",
            description="Evaluates its sub-graph for each item in a collection.",
            category="Containers & Hierarchy",
            default_config={"max_iterations": default_max_iterations},
            port_generator=iterate_ports,
            resolve_outputs=resolve_iterate,
            process_step=iterate_step,
            input_defaults=iterate_defaults,
            kind=NodeKind.MOLECULAR,
        ),
    ]


DEFINITIONS = build_definitions()
