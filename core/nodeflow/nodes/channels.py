"""SEND_DATA / RECEIVE_DATA: named channels over the global state store."""

from typing import Any

from nodeflow.graph.errors import NodeOperationError, TerminalReason
from nodeflow.graph.model import Node, OperationType
from nodeflow.graph.node import NodeDefinition, ResolveContext, StepContext, StepResult
from nodeflow.nodes.core import dump_value
from nodeflow.nodes.factory import data_in, data_out, exec_in, exec_out
from nodeflow.runtime.run_state import LogSeverity


def channel_name(node: Node) -> str:
    name = node.config.get("channel_name")
    if not isinstance(name, str) or not name.strip():
        raise NodeOperationError(
            f"{node.operation_type.name} node '{node.label}' is missing a channel name",
            reason=TerminalReason.ERROR_CHANNEL_NAME_MISSING,
        )
    return name


def send_data_ports(node_id: str, config: dict[str, Any]):
    return (
        [
            exec_in(node_id, "Execute"),
            data_in(node_id, "Data In", description="Data to send to the channel."),
        ],
        [exec_out(node_id, "Executed")],
    )


async def send_data_step(ctx: StepContext) -> StepResult:
    name = channel_name(ctx.node)
    data = await ctx.pull("Data In")
    ctx.run_state.global_state_store.send(name, data)
    ctx.log(f"Data sent to channel '{name}': {dump_value(data)}", LogSeverity.DEBUG)
    return ctx.fire("Executed")


def receive_data_ports(node_id: str, config: dict[str, Any]):
    return [], [data_out(node_id, "Data Out", description="Last data sent to the channel.")]


def resolve_receive_data(ctx: ResolveContext) -> dict[str, Any]:
    name = channel_name(ctx.node)
    data = ctx.run_state.global_state_store.receive(name)
    ctx.log(f"Data received from channel '{name}': {dump_value(data)}", LogSeverity.DEBUG)
    return {ctx.output_key("Data Out"): data}


DEFINITIONS = [
    NodeDefinition(
        operation_type=OperationType.SEND_DATA,
        name="Send Data",
        description="Sends input data to a named channel.",
        category="Data Channels",
        default_config={"channel_name": "defaultChannel"},
        port_generator=send_data_ports,
        process_step=send_data_step,
    ),
    NodeDefinition(
        operation_type=OperationType.RECEIVE_DATA,
        name="Receive Data",
        description="Reads the last value sent to a named channel.",
        category="Data Channels",
        default_config={"channel_name": "defaultChannel"},
        port_generator=receive_data_ports,
        resolve_outputs=resolve_receive_data,
    ),
]
