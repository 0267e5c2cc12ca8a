"""
Dependency Resolver - Backward DFS over DATA connections.

Given a target node, discovers the minimal set of nodes whose outputs feed
it and returns them in post-order: every node appears after all of its
DATA-input upstream nodes, leaves first. Execution connections play no part
in data dependency.
"""

import logging
from dataclasses import dataclass, field

from nodeflow.graph.errors import StructuralCycleError, TargetNotFoundError
from nodeflow.graph.model import Connection, Node, PortType

logger = logging.getLogger(__name__)


@dataclass
class DependencyPlan:
    """Evaluation order for a target and the set of nodes it contains."""

    order: list[str] = field(default_factory=list)
    members: set[str] = field(default_factory=set)


def resolve_dependencies(
    target_node_id: str,
    nodes: list[Node],
    connections: list[Connection],
) -> DependencyPlan:
    """
    Build the evaluation order for `target_node_id`.

    Raises:
        TargetNotFoundError: The target is not among `nodes`
        StructuralCycleError: A DATA cycle is reachable from the target
    """
    node_index = {node.id: node for node in nodes}
    if target_node_id not in node_index:
        raise TargetNotFoundError(f"Target node '{target_node_id}' not found")

    # Incoming DATA connections per node
    feeds: dict[str, list[Connection]] = {}
    for conn in connections:
        target = node_index.get(conn.to_node_id)
        if target is None:
            continue
        port = target.get_input_port(conn.to_port_id)
        if port is None or port.port_type != PortType.DATA:
            continue
        feeds.setdefault(conn.to_node_id, []).append(conn)

    plan = DependencyPlan()
    visited: set[str] = {target_node_id}
    on_stack: set[str] = {target_node_id}

    # Explicit DFS stack: (node id, its not yet explored feeds)
    stack = [(target_node_id, iter(feeds.get(target_node_id, [])))]
    while stack:
        node_id, pending = stack[-1]
        for conn in pending:
            upstream = conn.from_node_id
            if upstream in on_stack:
                raise StructuralCycleError(
                    f"Data dependency cycle through node '{upstream}'",
                    cycle_node_id=upstream,
                )
            if upstream in visited:
                continue
            visited.add(upstream)
            if upstream not in node_index:
                logger.warning(
                    f"Connection {conn.id} references missing node '{upstream}', skipping"
                )
                continue
            on_stack.add(upstream)
            stack.append((upstream, iter(feeds.get(upstream, []))))
            break
        else:
            # All feeds explored; post-order ends with the target
            stack.pop()
            on_stack.discard(node_id)
            plan.members.add(node_id)
            plan.order.append(node_id)

    logger.debug(f"Resolved {len(plan.order)} node(s) for target '{target_node_id}'")
    return plan
