"""Built-in node library and the default registry table."""

from nodeflow.config import EngineConfig
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes import arithmetic, channels, core, flow_control, logic, structures
from nodeflow.nodes.factory import (
    connect,
    create_atomic_node,
    create_iterate_node,
    create_molecular_node,
    generate_connection_id,
    generate_node_id,
    generate_port_id,
)


def build_default_registry(config: EngineConfig | None = None) -> NodeRegistry:
    """
    Registry populated with every built-in node definition.

    Args:
        config: Supplies default_max_iterations for ITERATE nodes; when None
            the library constant is used
    """
    flow_definitions = (
        flow_control.build_definitions(config.default_max_iterations)
        if config is not None
        else flow_control.DEFINITIONS
    )
    registry = NodeRegistry()
    registry.register_all(core.DEFINITIONS)
    registry.register_all(arithmetic.DEFINITIONS)
    registry.register_all(logic.DEFINITIONS)
    registry.register_all(structures.DEFINITIONS)
    registry.register_all(flow_definitions)
    registry.register_all(channels.DEFINITIONS)
    return registry


__all__ = [
    "build_default_registry",
    "connect",
    "create_atomic_node",
    "create_iterate_node",
    "create_molecular_node",
    "generate_connection_id",
    "generate_node_id",
    "generate_port_id",
]
