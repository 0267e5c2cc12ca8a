"""Static table of node definitions keyed by operation type."""

import logging
from collections.abc import Iterable

from nodeflow.graph.model import OperationType
from nodeflow.graph.node import NodeDefinition

logger = logging.getLogger(__name__)


class NodeRegistry:
    """
    Lookup table the engine consults for port generators, resolvers and steps.

    Example:
        registry = NodeRegistry()
        registry.register(NodeDefinition(
            operation_type=OperationType.VALUE_PROVIDER,
            name="Value Provider",
            port_generator=value_ports,
            resolve_outputs=resolve_value,
        ))
        registry.get(OperationType.VALUE_PROVIDER)
    """

    def __init__(self, definitions: Iterable[NodeDefinition] | None = None):
        self._definitions: dict[OperationType, NodeDefinition] = {}
        if definitions is not None:
            self.register_all(definitions)

    def register(self, definition: NodeDefinition, replace: bool = False) -> None:
        """
        Register a node definition.

        Args:
            definition: Definition to add
            replace: Overwrite an existing definition for the same operation type

        Raises:
            ValueError: If the operation type is already registered and replace is False
        """
        op = definition.operation_type
        if op in self._definitions and not replace:
            raise ValueError(f"Operation type '{op}' is already registered")
        self._definitions[op] = definition
        logger.debug(f"Registered node definition '{definition.name}' for {op}")

    def register_all(self, definitions: Iterable[NodeDefinition], replace: bool = False) -> None:
        for definition in definitions:
            self.register(definition, replace=replace)

    def get(self, operation_type: OperationType | str) -> NodeDefinition | None:
        try:
            return self._definitions.get(OperationType(operation_type))
        except ValueError:
            return None

    def require(self, operation_type: OperationType | str) -> NodeDefinition:
        definition = self.get(operation_type)
        if definition is None:
            raise KeyError(f"No node definition registered for '{operation_type}'")
        return definition

    def definitions(self) -> list[NodeDefinition]:
        return list(self._definitions.values())

    def operation_types(self) -> list[OperationType]:
        return list(self._definitions)

    def __contains__(self, operation_type: object) -> bool:
        return operation_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
