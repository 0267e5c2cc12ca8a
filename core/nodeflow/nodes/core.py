"""Values, utilities and the BRANCH flow node."""

import json
from typing import Any

from nodeflow.graph.errors import NodeOperationError, TerminalReason
from nodeflow.graph.model import LogicalCategory, OperationType
from nodeflow.graph.node import NodeDefinition, ResolveContext, StepContext, StepResult
from nodeflow.nodes.factory import data_in, data_out, exec_in, exec_out
from nodeflow.runtime.run_state import LogSeverity


def dump_value(value: Any) -> str:
    """JSON rendering used in run log messages."""
    return json.dumps(value, default=str)


# === VALUE_PROVIDER ===


def value_provider_ports(node_id: str, config: dict[str, Any]):
    return [], [data_out(node_id, "Value", description="The configured constant value.")]


def resolve_value_provider(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Value"): ctx.node.config.get("value")}


# === ASSIGN ===


def assign_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Input")], [data_out(node_id, "Output")]


def resolve_assign(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Output"): ctx.input("Input")}


# === LOG_VALUE ===


def log_value_ports(node_id: str, config: dict[str, Any]):
    return (
        [exec_in(node_id, "Execute"), data_in(node_id, "Input", description="Value to log.")],
        [
            exec_out(node_id, "Executed"),
            data_out(node_id, "Output", description="Passes through the input value."),
        ],
    )


def resolve_log_value(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Output"): ctx.input("Input")}


async def log_value_step(ctx: StepContext) -> StepResult:
    value = await ctx.pull("Input")
    if value is None and not ctx.is_connected("Input") and ctx.triggered_by is not None:
        ctx.log("LOG_VALUE: Input is unconnected and has no override.", LogSeverity.DEBUG)
    ctx.log(f"LOG: {dump_value(value)}")
    return ctx.fire("Executed")


# === BRANCH ===


def branch_ports(node_id: str, config: dict[str, Any]):
    return (
        [
            exec_in(node_id, "Execute"),
            data_in(node_id, "Condition", LogicalCategory.BOOLEAN),
            data_in(node_id, "Input Value"),
        ],
        [
            exec_out(node_id, "If True (Exec)"),
            exec_out(node_id, "If False (Exec)"),
            data_out(node_id, "If True (Data)"),
            data_out(node_id, "If False (Data)"),
        ],
    )


def resolve_branch(ctx: ResolveContext) -> dict[str, Any]:
    # Anything but a literal True routes data down the false side
    side = "If True (Data)" if ctx.input("Condition") is True else "If False (Data)"
    return {ctx.output_key(side): ctx.input("Input Value")}


async def branch_step(ctx: StepContext) -> StepResult:
    condition = await ctx.pull("Condition")
    if condition is None and not ctx.is_connected("Condition"):
        ctx.log(
            "BRANCH Condition not connected and no override, defaulting to false.",
            LogSeverity.DEBUG,
        )
        condition = False

    if not isinstance(condition, bool):
        raise NodeOperationError(
            f"BRANCH Condition input must be boolean, but received "
            f"{type(condition).__name__} ({dump_value(condition)})",
            reason=TerminalReason.ERROR_INVALID_INPUT_TYPE,
        )

    return ctx.fire("If True (Exec)" if condition else "If False (Exec)")


# === ORGANIZATIONAL ===


def no_ports(node_id: str, config: dict[str, Any]):
    return [], []


DEFINITIONS = [
    NodeDefinition(
        operation_type=OperationType.VALUE_PROVIDER,
        name="Value Provider",
        description="Outputs a constant, user-defined value.",
        category="Values & Inputs",
        default_config={"value": 0},
        port_generator=value_provider_ports,
        resolve_outputs=resolve_value_provider,
    ),
    NodeDefinition(
        operation_type=OperationType.ASSIGN,
        name="Assign (Passthrough)",
        description="Passes input to output.",
        port_generator=assign_ports,
        resolve_outputs=resolve_assign,
    ),
    NodeDefinition(
        operation_type=OperationType.LOG_VALUE,
        name="Log Value",
        description="Logs its input value to the run log and passes it through.",
        port_generator=log_value_ports,
        resolve_outputs=resolve_log_value,
        process_step=log_value_step,
    ),
    NodeDefinition(
        operation_type=OperationType.BRANCH,
        name="Branch (If)",
        description="Conditional execution and data flow.",
        category="Flow Control",
        port_generator=branch_ports,
        resolve_outputs=resolve_branch,
        process_step=branch_step,
    ),
    NodeDefinition(
        operation_type=OperationType.COMMENT,
        name="Comment",
        description="Adds text annotations to the graph.",
        default_config={"comment_text": "My Comment"},
        port_generator=no_ports,
    ),
    NodeDefinition(
        operation_type=OperationType.FRAME,
        name="Frame",
        description="Visually groups related nodes.",
        default_config={"frame_title": "My Group"},
        port_generator=no_ports,
    ),
]
