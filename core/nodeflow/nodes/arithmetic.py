"""Math nodes: arithmetic, rounding and random numbers."""

import math
import random
from collections.abc import Callable
from typing import Any

from nodeflow.graph.errors import NodeOperationError, TerminalReason
from nodeflow.graph.model import LogicalCategory, Node, OperationType
from nodeflow.graph.node import NodeDefinition, ResolveContext
from nodeflow.nodes.factory import data_in, data_out

NUMBER = LogicalCategory.NUMBER


def to_number(value: Any, what: str) -> int | float:
    """
    Coerce an input to a number.

    Ints and floats pass through; numeric strings are parsed. Booleans, None
    and anything else are rejected.

    Raises:
        NodeOperationError: With the invalid-input-type reason
    """
    if isinstance(value, bool):
        raise NodeOperationError(
            f"Invalid number input for {what}: {value!r}",
            reason=TerminalReason.ERROR_INVALID_INPUT_TYPE,
        )
    if isinstance(value, (int, float)) and not (isinstance(value, float) and math.isnan(value)):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            pass
        else:
            if not math.isnan(parsed):
                return parsed
    raise NodeOperationError(
        f"Invalid number input for {what}: {value!r}",
        reason=TerminalReason.ERROR_INVALID_INPUT_TYPE,
    )


def _binary(
    op: OperationType,
    name: str,
    description: str,
    inputs: tuple[str, str],
    output: str,
    fn: Callable[[Any, Any, ResolveContext], Any],
) -> NodeDefinition:
    first, second = inputs

    def ports(node_id: str, config: dict[str, Any]):
        return (
            [data_in(node_id, first, NUMBER), data_in(node_id, second, NUMBER)],
            [data_out(node_id, output, NUMBER)],
        )

    def resolve(ctx: ResolveContext) -> dict[str, Any]:
        a = to_number(ctx.input(first), op.name)
        b = to_number(ctx.input(second), op.name)
        return {ctx.output_key(output): fn(a, b, ctx)}

    return NodeDefinition(
        operation_type=op,
        name=name,
        description=description,
        category="Math Operations",
        port_generator=ports,
        resolve_outputs=resolve,
    )


def _unary(
    op: OperationType, name: str, description: str, fn: Callable[[Any], Any]
) -> NodeDefinition:
    def ports(node_id: str, config: dict[str, Any]):
        return [data_in(node_id, "Value", NUMBER)], [data_out(node_id, "Result", NUMBER)]

    def resolve(ctx: ResolveContext) -> dict[str, Any]:
        return {ctx.output_key("Result"): fn(to_number(ctx.input("Value"), op.name))}

    return NodeDefinition(
        operation_type=op,
        name=name,
        description=description,
        category="Math Operations",
        port_generator=ports,
        resolve_outputs=resolve,
    )


def _divide(a, b, ctx: ResolveContext):
    if b == 0:
        raise NodeOperationError(
            f"Division by zero ({a} / {b})", reason=TerminalReason.ERROR_DIVISION_BY_ZERO
        )
    return a / b


def _modulo(a, b, ctx: ResolveContext):
    if b == 0:
        raise NodeOperationError(
            f"Modulo by zero ({a} % {b})", reason=TerminalReason.ERROR_DIVISION_BY_ZERO
        )
    # Sign follows the dividend, matching a truncated remainder
    return math.fmod(a, b) if isinstance(a, float) or isinstance(b, float) else int(math.fmod(a, b))


def _round_half_up(value: int | float) -> int:
    return math.floor(value + 0.5)


# === RANDOM_NUMBER ===


def random_number_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Min", NUMBER), data_in(node_id, "Max", NUMBER)],
        [data_out(node_id, "Result", NUMBER)],
    )


def random_number_defaults(node: Node) -> dict[str, Any]:
    return {
        "Min": node.config.get("default_min", 0),
        "Max": node.config.get("default_max", 1),
    }


def resolve_random_number(ctx: ResolveContext) -> dict[str, Any]:
    low = to_number(ctx.input("Min"), "RANDOM_NUMBER")
    high = to_number(ctx.input("Max"), "RANDOM_NUMBER")
    if low >= high:
        raise NodeOperationError(
            f"Invalid range for RANDOM_NUMBER: Min ({low}) >= Max ({high})",
            reason=TerminalReason.ERROR_INVALID_RANGE,
        )
    return {ctx.output_key("Result"): random.uniform(low, high)}


DEFINITIONS = [
    _binary(
        OperationType.ADDITION,
        "Addition",
        "Outputs the sum of 'Number 1' and 'Number 2'.",
        ("Number 1", "Number 2"),
        "Sum",
        lambda a, b, ctx: a + b,
    ),
    _binary(
        OperationType.SUBTRACT,
        "Subtract",
        "Subtracts 'Subtrahend' from 'Minuend'.",
        ("Minuend", "Subtrahend"),
        "Difference",
        lambda a, b, ctx: a - b,
    ),
    _binary(
        OperationType.MULTIPLY,
        "Multiply",
        "Multiplies 'Operand A' by 'Operand B'.",
        ("Operand A", "Operand B"),
        "Product",
        lambda a, b, ctx: a * b,
    ),
    _binary(
        OperationType.DIVIDE,
        "Divide",
        "Divides 'Dividend' by 'Divisor'.",
        ("Dividend", "Divisor"),
        "Quotient",
        _divide,
    ),
    _binary(
        OperationType.MODULO,
        "Modulo",
        "Remainder of 'Dividend' / 'Divisor'.",
        ("Dividend", "Divisor"),
        "Remainder",
        _modulo,
    ),
    NodeDefinition(
        operation_type=OperationType.RANDOM_NUMBER,
        name="Random Number",
        description="Generates a pseudo-random number between Min and Max.",
        category="Math Operations",
        default_config={"default_min": 0, "default_max": 1},
        port_generator=random_number_ports,
        resolve_outputs=resolve_random_number,
        input_defaults=random_number_defaults,
    ),
    _unary(
        OperationType.ROUND,
        "Round",
        "Rounds 'Value' to the nearest integer, halves up.",
        _round_half_up,
    ),
    _unary(
        OperationType.FLOOR,
        "Floor",
        "Rounds 'Value' down to the nearest integer.",
        math.floor,
    ),
    _unary(
        OperationType.CEIL,
        "Ceil",
        "Rounds 'Value' up to the nearest integer.",
        math.ceil,
    ),
]
