"""Boolean logic, comparison and SWITCH nodes."""

import json
from typing import Any

from nodeflow.graph.errors import NodeOperationError, TerminalReason
from nodeflow.graph.model import LogicalCategory, OperationType, PortType
from nodeflow.graph.node import NodeDefinition, ResolveContext
from nodeflow.nodes.arithmetic import to_number
from nodeflow.nodes.factory import data_in, data_out
from nodeflow.runtime.run_state import LogSeverity

BOOLEAN = LogicalCategory.BOOLEAN
NUMBER = LogicalCategory.NUMBER


def json_equal(a: Any, b: Any) -> bool:
    """Structural equality by canonical JSON form; dict key order is ignored, 1 != True."""
    return json.dumps(a, sort_keys=True, default=str) == json.dumps(b, sort_keys=True, default=str)


def _boolean_inputs(ctx: ResolveContext) -> list[Any]:
    return [
        ctx.inputs.get(port.id)
        for port in ctx.node.input_ports
        if port.port_type == PortType.DATA and port.category == BOOLEAN
    ]


# === AND / OR / XOR ===


def gate_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Input 1", BOOLEAN), data_in(node_id, "Input 2", BOOLEAN)],
        [data_out(node_id, "Result", BOOLEAN)],
    )


def resolve_and(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Result"): all(v is True for v in _boolean_inputs(ctx))}


def resolve_or(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Result"): any(v is True for v in _boolean_inputs(ctx))}


def resolve_xor(ctx: ResolveContext) -> dict[str, Any]:
    true_count = sum(1 for v in _boolean_inputs(ctx) if v is True)
    return {ctx.output_key("Result"): true_count % 2 == 1}


# === NOT ===


def not_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Input", BOOLEAN)], [data_out(node_id, "Result", BOOLEAN)]


def resolve_not(ctx: ResolveContext) -> dict[str, Any]:
    value = ctx.input("Input")
    if value is None:
        ctx.log("Input for NOT is empty, treating as false. Outputting true.", LogSeverity.DEBUG)
        value = False
    if not isinstance(value, bool):
        raise NodeOperationError(
            f"NOT input must be boolean, got {type(value).__name__}",
            reason=TerminalReason.ERROR_INVALID_INPUT_TYPE,
        )
    return {ctx.output_key("Result"): not value}


# === COMPARISON ===


def equals_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Value 1"), data_in(node_id, "Value 2")],
        [data_out(node_id, "Result", BOOLEAN)],
    )


def resolve_equals(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Result"): json_equal(ctx.input("Value 1"), ctx.input("Value 2"))}


def comparison_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Operand A", NUMBER), data_in(node_id, "Operand B", NUMBER)],
        [data_out(node_id, "Result", BOOLEAN)],
    )


def resolve_greater_than(ctx: ResolveContext) -> dict[str, Any]:
    a = to_number(ctx.input("Operand A"), "GREATER_THAN")
    b = to_number(ctx.input("Operand B"), "GREATER_THAN")
    return {ctx.output_key("Result"): a > b}


def resolve_less_than(ctx: ResolveContext) -> dict[str, Any]:
    a = to_number(ctx.input("Operand A"), "LESS_THAN")
    b = to_number(ctx.input("Operand B"), "LESS_THAN")
    return {ctx.output_key("Result"): a < b}


# === IS_EMPTY ===


def is_empty_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Target")], [data_out(node_id, "Is Empty", BOOLEAN)]


def resolve_is_empty(ctx: ResolveContext) -> dict[str, Any]:
    target = ctx.input("Target")
    if target is None:
        empty = True
    elif isinstance(target, (str, list, tuple, dict)):
        empty = len(target) == 0
    else:
        empty = False
    return {ctx.output_key("Is Empty"): empty}


# === SWITCH ===


def switch_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Value")], [data_out(node_id, "Result")]


def resolve_switch(ctx: ResolveContext) -> dict[str, Any]:
    """
    Match 'Value' against config["switch_cases"].

    Each case is {"case_value": ..., "output_value": ...}; the first case
    whose value is JSON-equal wins. With no match the configured
    switch_default_value is used; without one the output is None and a
    debug entry is logged (informational, the run continues).
    """
    value = ctx.input("Value")
    config = ctx.node.config

    for case in config.get("switch_cases") or []:
        if json_equal(value, case.get("case_value")):
            return {ctx.output_key("Result"): case.get("output_value")}

    default = config.get("switch_default_value")
    if default is None:
        ctx.log(
            f"SWITCH node: No matching case for value '{json.dumps(value, default=str)}' "
            f"and no default value defined. Outputting None. "
            f"({TerminalReason.ERROR_SWITCH_NO_MATCH})",
            LogSeverity.DEBUG,
        )
    return {ctx.output_key("Result"): default}


def _definition(op, name, description, ports, resolve, category="Logic & Comparison", **kwargs):
    return NodeDefinition(
        operation_type=op,
        name=name,
        description=description,
        category=category,
        port_generator=ports,
        resolve_outputs=resolve,
        **kwargs,
    )


DEFINITIONS = [
    _definition(OperationType.LOGICAL_AND, "AND", "True when every input is true.", gate_ports, resolve_and),
    _definition(OperationType.LOGICAL_OR, "OR", "True when any input is true.", gate_ports, resolve_or),
    _definition(
        OperationType.LOGICAL_XOR, "XOR", "True when an odd number of inputs are true.",
        gate_ports, resolve_xor,
    ),
    _definition(OperationType.NOT, "NOT", "Inverts a boolean input.", not_ports, resolve_not),
    _definition(
        OperationType.EQUALS, "Equals", "Compares 'Value 1' and 'Value 2' for equality.",
        equals_ports, resolve_equals,
    ),
    _definition(
        OperationType.GREATER_THAN, "Greater Than", "Checks if 'Operand A' > 'Operand B'.",
        comparison_ports, resolve_greater_than,
    ),
    _definition(
        OperationType.LESS_THAN, "Less Than", "Checks if 'Operand A' < 'Operand B'.",
        comparison_ports, resolve_less_than,
    ),
    _definition(
        OperationType.IS_EMPTY, "Is Empty", "True for None, empty strings, lists and objects.",
        is_empty_ports, resolve_is_empty,
    ),
    _definition(
        OperationType.SWITCH, "Switch", "Outputs a value chosen by matching 'Value' against cases.",
        switch_ports, resolve_switch,
        category="Flow Control",
        default_config={"switch_cases": [], "switch_default_value": None},
    ),
]
