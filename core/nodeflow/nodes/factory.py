"""
Node Factory - Id generation and node construction from registry definitions.

Port ids embed the owning node id and a sanitized port name so they stay
readable in logs and context keys, e.g. "node_1718000000000_3_in_number_1_7".
"""

import itertools
import re
import secrets
import time
from typing import Any

from nodeflow.graph.model import (
    Connection,
    LogicalCategory,
    Node,
    NodeKind,
    OperationType,
    Port,
    PortType,
    Position,
    SubGraph,
)
from nodeflow.graph.registry import NodeRegistry

_node_counter = itertools.count()
_port_counter = itertools.count()

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^a-z0-9_]")


def generate_node_id() -> str:
    return f"node_{int(time.time() * 1000)}_{next(_node_counter)}"


def generate_port_id(node_id: str, direction: str, name: str) -> str:
    """Build a port id: "{node_id}_{in|out}_{sanitized name}_{counter}"."""
    sanitized = _UNSAFE.sub("", _WHITESPACE.sub("_", name.lower()))[:20]
    return f"{node_id}_{direction}_{sanitized}_{next(_port_counter)}"


def generate_connection_id() -> str:
    return f"conn_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


# ---------------------------------------------------------------------------
# Port builders used by port generators
# ---------------------------------------------------------------------------


def data_in(
    node_id: str,
    name: str,
    category: LogicalCategory = LogicalCategory.ANY,
    description: str = "",
) -> Port:
    return Port(
        id=generate_port_id(node_id, "in", name),
        name=name,
        category=category,
        port_type=PortType.DATA,
        description=description,
    )


def data_out(
    node_id: str,
    name: str,
    category: LogicalCategory = LogicalCategory.ANY,
    description: str = "",
) -> Port:
    return Port(
        id=generate_port_id(node_id, "out", name),
        name=name,
        category=category,
        port_type=PortType.DATA,
        description=description,
    )


def exec_in(node_id: str, name: str) -> Port:
    return Port(
        id=generate_port_id(node_id, "in", name),
        name=name,
        category=LogicalCategory.VOID,
        port_type=PortType.EXECUTION,
    )


def exec_out(node_id: str, name: str) -> Port:
    return Port(
        id=generate_port_id(node_id, "out", name),
        name=name,
        category=LogicalCategory.VOID,
        port_type=PortType.EXECUTION,
    )


# ---------------------------------------------------------------------------
# Node construction
# ---------------------------------------------------------------------------


def create_atomic_node(
    registry: NodeRegistry,
    operation_type: OperationType | str,
    node_id: str | None = None,
    name: str | None = None,
    config: dict[str, Any] | None = None,
    position: Position | None = None,
    input_ports: list[Port] | None = None,
    output_ports: list[Port] | None = None,
) -> Node:
    """
    Create an atomic node with ports generated by its registered definition.

    The definition's default_config is merged under `config`. Explicit
    `input_ports` / `output_ports` replace the generated ones.

    Raises:
        KeyError: If `operation_type` has no registered definition
    """
    definition = registry.require(operation_type)
    node_id = node_id or generate_node_id()
    merged = definition.merged_config(config)
    generated_inputs, generated_outputs = definition.port_generator(node_id, merged)

    return Node(
        id=node_id,
        name=name or definition.name,
        kind=NodeKind.ATOMIC,
        operation_type=definition.operation_type,
        input_ports=input_ports if input_ports is not None else generated_inputs,
        output_ports=output_ports if output_ports is not None else generated_outputs,
        config=merged,
        position=position or Position(),
        description=definition.description,
    )


def create_molecular_node(
    registry: NodeRegistry,
    input_ports: list[Port] | None = None,
    output_ports: list[Port] | None = None,
    sub_graph: SubGraph | None = None,
    node_id: str | None = None,
    name: str | None = None,
    config: dict[str, Any] | None = None,
    position: Position | None = None,
) -> Node:
    """
    Create a composite node around a sub-graph.

    Composite ports are caller-supplied; each data port is wired to the
    INPUT_GRAPH / OUTPUT_GRAPH placeholder whose `external_port_name`
    matches its name.
    """
    definition = registry.get(OperationType.MOLECULAR)

    return Node(
        id=node_id or generate_node_id(),
        name=name or (definition.name if definition is not None else "Molecule"),
        kind=NodeKind.MOLECULAR,
        operation_type=OperationType.MOLECULAR,
        input_ports=list(input_ports or []),
        output_ports=list(output_ports or []),
        config=definition.merged_config(config) if definition is not None else dict(config or {}),
        position=position or Position(),
        description=definition.description if definition is not None else "",
        sub_graph=sub_graph or SubGraph(),
    )


def create_iterate_node(
    registry: NodeRegistry,
    sub_graph: SubGraph | None = None,
    node_id: str | None = None,
    name: str | None = None,
    config: dict[str, Any] | None = None,
    position: Position | None = None,
) -> Node:
    """Create an ITERATE node with generated ports and an optional body sub-graph."""
    node = create_atomic_node(
        registry,
        OperationType.ITERATE,
        node_id=node_id,
        name=name,
        config=config,
        position=position,
    )
    return node.model_copy(
        update={"kind": NodeKind.MOLECULAR, "sub_graph": sub_graph or SubGraph()}
    )


def connect(from_node: Node, from_port: Port, to_node: Node, to_port: Port) -> Connection:
    """Build a connection between two ports. No validation; see `can_connect`."""
    return Connection(
        id=generate_connection_id(),
        from_node_id=from_node.id,
        from_port_id=from_port.id,
        to_node_id=to_node.id,
        to_port_id=to_port.id,
    )
