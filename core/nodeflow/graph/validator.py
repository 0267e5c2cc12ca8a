"""
Graph Validator - Structural checks for connections and whole graphs.

`can_connect` answers the editor's question "may this wire be drawn?".
`validate_graph` sweeps a loaded snapshot and reports every problem it
finds, so the CLI and hosts can refuse malformed graphs up front.
"""

import logging
from dataclasses import dataclass

from nodeflow.graph.model import (
    Connection,
    LogicalCategory,
    Node,
    OperationType,
    Port,
    PortType,
    find_incoming,
)

logger = logging.getLogger(__name__)

# Inputs on these operations accept more than one DATA connection
MULTI_INPUT_OPERATIONS = frozenset({OperationType.UNION})


@dataclass
class ConnectionCheck:
    """Outcome of a connection check."""

    succeeded: bool
    message: str


def categories_compatible(source: LogicalCategory, target: LogicalCategory) -> bool:
    """ANY matches everything, VOID only matches VOID, anything else must be equal."""
    if source == LogicalCategory.ANY or target == LogicalCategory.ANY:
        return True
    return source == target


def can_connect(
    from_node: Node,
    from_port: Port,
    to_node: Node,
    to_port: Port,
    connections: list[Connection],
) -> ConnectionCheck:
    """
    Check whether an output port may be wired into an input port.

    Args:
        from_node: Node owning the output port
        from_port: Source output port
        to_node: Node owning the input port
        to_port: Target input port
        connections: Connections already in the graph

    Returns:
        ConnectionCheck with the first rule that failed, or success
    """
    if from_node.id == to_node.id:
        return ConnectionCheck(False, "Cannot connect a node to itself.")

    if from_port.port_type != to_port.port_type:
        return ConnectionCheck(
            False,
            f"Port type mismatch: Cannot connect {from_port.port_type} port "
            f"to {to_port.port_type} port.",
        )

    if to_port.port_type == PortType.DATA:
        if not categories_compatible(from_port.category, to_port.category):
            return ConnectionCheck(
                False,
                f"Data category mismatch: Cannot connect {from_port.category} "
                f"to {to_port.category}.",
            )
        if (
            to_node.operation_type not in MULTI_INPUT_OPERATIONS
            and find_incoming(connections, to_node.id, to_port.id) is not None
        ):
            return ConnectionCheck(
                False,
                f"Input data port '{to_port.name}' on a non-UNION node already has a "
                "connection. Remove the existing connection first.",
            )

    return ConnectionCheck(True, "Connection is valid.")


def validate_graph(nodes: list[Node], connections: list[Connection], scope: str = "") -> list[str]:
    """
    Validate a graph snapshot.

    Molecular sub-graphs are validated recursively; their messages are
    prefixed with the owning node's label.

    Returns:
        List of error messages, empty when the graph is valid
    """
    errors: list[str] = []
    node_index: dict[str, Node] = {}

    for node in nodes:
        if node.id in node_index:
            errors.append(f"{scope}Duplicate node id '{node.id}'")
            continue
        node_index[node.id] = node

        seen_ports: set[str] = set()
        for port in node.input_ports + node.output_ports:
            if port.id in seen_ports:
                errors.append(f"{scope}Node '{node.label}' has duplicate port id '{port.id}'")
            seen_ports.add(port.id)

    seen_connections: set[str] = set()
    fed_inputs: set[tuple[str, str]] = set()

    for conn in connections:
        if conn.id in seen_connections:
            errors.append(f"{scope}Duplicate connection id '{conn.id}'")
        seen_connections.add(conn.id)

        source = node_index.get(conn.from_node_id)
        target = node_index.get(conn.to_node_id)
        if source is None:
            errors.append(f"{scope}Connection '{conn.id}' has missing source node '{conn.from_node_id}'")
        if target is None:
            errors.append(f"{scope}Connection '{conn.id}' has missing target node '{conn.to_node_id}'")
        if source is None or target is None:
            continue

        from_port = source.get_output_port(conn.from_port_id)
        to_port = target.get_input_port(conn.to_port_id)
        if from_port is None:
            errors.append(
                f"{scope}Connection '{conn.id}' references missing output port "
                f"'{conn.from_port_id}' on node '{source.label}'"
            )
        if to_port is None:
            errors.append(
                f"{scope}Connection '{conn.id}' references missing input port "
                f"'{conn.to_port_id}' on node '{target.label}'"
            )
        if from_port is None or to_port is None:
            continue

        if source.id == target.id:
            errors.append(f"{scope}Connection '{conn.id}' connects node '{source.label}' to itself")
        if from_port.port_type != to_port.port_type:
            errors.append(
                f"{scope}Connection '{conn.id}' joins a {from_port.port_type} port "
                f"to a {to_port.port_type} port"
            )
            continue

        if to_port.port_type == PortType.DATA:
            if not categories_compatible(from_port.category, to_port.category):
                errors.append(
                    f"{scope}Connection '{conn.id}' joins {from_port.category} "
                    f"to {to_port.category}"
                )
            key = (target.id, to_port.id)
            if key in fed_inputs and target.operation_type not in MULTI_INPUT_OPERATIONS:
                errors.append(
                    f"{scope}Input '{to_port.name}' on node '{target.label}' has more than one connection"
                )
            fed_inputs.add(key)

    for node in node_index.values():
        if node.sub_graph is not None:
            errors.extend(
                validate_graph(
                    node.sub_graph.nodes,
                    node.sub_graph.connections,
                    scope=f"{scope}{node.label}: ",
                )
            )

    if errors:
        logger.debug(f"Graph validation found {len(errors)} problem(s)")
    return errors
