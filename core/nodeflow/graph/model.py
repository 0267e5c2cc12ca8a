"""
Graph Model - Nodes, ports and connections consumed by the engine.

The engine never owns a graph: every resolution or dispatch receives a
snapshot (a list of nodes and a list of connections) and treats it as
read-only for the duration of the call.

Two kinds of ports flow through a graph:
- DATA ports carry values and are followed by dependency resolution (pull)
- EXECUTION ports carry control pulses and are followed by dispatch (push)

Molecular nodes own a nested sub-graph with INPUT_GRAPH / OUTPUT_GRAPH
placeholder nodes that map the composite's ports onto internal wiring.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

MAX_EXECUTION_STEPS = 1000
MAX_CYCLE_DEPTH_LIMIT = 10
DEFAULT_MAX_ITERATIONS = 100


class NodeKind(StrEnum):
    """Structural kind of a node."""

    ATOMIC = "atomic"
    MOLECULAR = "molecular"


class PortType(StrEnum):
    """What a port carries."""

    DATA = "data"
    EXECUTION = "execution"


class LogicalCategory(StrEnum):
    """Logical value type of a port."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"
    VOID = "void"

    # Domain categories
    DAMAGE_ROLL = "damage_roll"
    ATTACK_BONUS = "attack_bonus"
    CHARACTER_STAT = "character_stat"
    ACTION_TYPE = "action_type"
    DICE_NOTATION = "dice_notation"


class OperationType(StrEnum):
    """Behaviour tag selecting a node definition from the registry."""

    # Values & utilities
    VALUE_PROVIDER = "value_provider"
    ASSIGN = "assign"
    LOG_VALUE = "log_value"
    COMMENT = "comment"
    FRAME = "frame"

    # Math
    ADDITION = "addition"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    MODULO = "modulo"
    RANDOM_NUMBER = "random_number"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"

    # Logic
    LOGICAL_AND = "logical_and"
    LOGICAL_OR = "logical_or"
    LOGICAL_XOR = "logical_xor"
    NOT = "not"
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    SWITCH = "switch"

    # Text & collections
    CONCATENATE = "concatenate"
    TO_STRING = "to_string"
    STRING_LENGTH = "string_length"
    SPLIT_STRING = "split_string"
    UNION = "union"
    GET_ITEM_AT_INDEX = "get_item_at_index"
    COLLECTION_LENGTH = "collection_length"
    GET_PROPERTY = "get_property"
    SET_PROPERTY = "set_property"
    CONSTRUCT_OBJECT = "construct_object"

    # Flow control & hierarchy
    BRANCH = "branch"
    ON_EVENT = "on_event"
    STATE = "state"
    INPUT_GRAPH = "input_graph"
    OUTPUT_GRAPH = "output_graph"
    MOLECULAR = "molecular"
    ITERATE = "iterate"
    LOOP_ITEM = "loop_item"
    ITERATION_RESULT = "iteration_result"

    # Channels
    SEND_DATA = "send_data"
    RECEIVE_DATA = "receive_data"


ORGANIZATIONAL_OPERATIONS = frozenset({OperationType.COMMENT, OperationType.FRAME})


def context_key(node_id: str, port_id: str) -> str:
    """Key under which a port's resolved value lives in an execution context."""
    return f"{node_id}_{port_id}"


class Position(BaseModel):
    """Canvas position. Ignored by the engine."""

    x: float = 0.0
    y: float = 0.0


class Port(BaseModel):
    """A typed input or output slot on a node."""

    id: str
    name: str
    category: LogicalCategory = LogicalCategory.ANY
    port_type: PortType = PortType.DATA
    description: str = ""

    @property
    def is_execution(self) -> bool:
        return self.port_type == PortType.EXECUTION


class Connection(BaseModel):
    """Directed edge from an output port to an input port."""

    id: str
    from_node_id: str
    from_port_id: str
    to_node_id: str
    to_port_id: str

    model_config = {"frozen": True}


class SubGraph(BaseModel):
    """Nodes and connections owned by a molecular node."""

    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


class Node(BaseModel):
    """
    A node in a graph.

    Examples:
        Node(
            id="n1",
            name="Five",
            operation_type=OperationType.VALUE_PROVIDER,
            output_ports=[Port(id="n1_out_value_0", name="Value")],
            config={"value": 5},
        )
    """

    id: str
    name: str = ""
    kind: NodeKind = NodeKind.ATOMIC
    operation_type: OperationType
    input_ports: list[Port] = Field(default_factory=list)
    output_ports: list[Port] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)
    description: str = ""
    sub_graph: SubGraph | None = Field(
        default=None, description="Nested graph owned by molecular nodes"
    )

    model_config = {"extra": "allow"}

    @property
    def is_organizational(self) -> bool:
        """Comments and frames take part in traversal but carry no behaviour."""
        return self.operation_type in ORGANIZATIONAL_OPERATIONS

    @property
    def label(self) -> str:
        return self.name or self.id

    def input_port(self, name: str, port_type: PortType = PortType.DATA) -> Port | None:
        for port in self.input_ports:
            if port.name == name and port.port_type == port_type:
                return port
        return None

    def output_port(self, name: str, port_type: PortType = PortType.DATA) -> Port | None:
        for port in self.output_ports:
            if port.name == name and port.port_type == port_type:
                return port
        return None

    def get_input_port(self, port_id: str) -> Port | None:
        return next((p for p in self.input_ports if p.id == port_id), None)

    def get_output_port(self, port_id: str) -> Port | None:
        return next((p for p in self.output_ports if p.id == port_id), None)

    def data_inputs(self) -> list[Port]:
        return [p for p in self.input_ports if p.port_type == PortType.DATA]

    def data_outputs(self) -> list[Port]:
        return [p for p in self.output_ports if p.port_type == PortType.DATA]

    def execution_outputs(self) -> list[Port]:
        return [p for p in self.output_ports if p.port_type == PortType.EXECUTION]

    def input_override(self, port_id: str) -> Any:
        """Literal value configured for an unconnected input, or None."""
        return (self.config.get("input_port_overrides") or {}).get(port_id)

    def output_key(self, port_name: str, port_type: PortType = PortType.DATA) -> str:
        """Context key of a named output port. Raises KeyError if absent."""
        port = self.output_port(port_name, port_type)
        if port is None:
            raise KeyError(f"Output port '{port_name}' ({port_type}) not found on node '{self.label}'")
        return context_key(self.id, port.id)


class Graph(BaseModel):
    """
    A complete graph snapshot.

    The engine entry points take `nodes` and `connections` separately; this
    container exists for loading graphs from files and for validation.
    """

    id: str = "graph"
    name: str = ""
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming(self, node_id: str, port_id: str | None = None) -> list[Connection]:
        return [
            c
            for c in self.connections
            if c.to_node_id == node_id and (port_id is None or c.to_port_id == port_id)
        ]

    def outgoing(self, node_id: str, port_id: str | None = None) -> list[Connection]:
        return [
            c
            for c in self.connections
            if c.from_node_id == node_id and (port_id is None or c.from_port_id == port_id)
        ]

    def validate(self) -> list[str]:
        """Validate the graph structure. Returns a list of error messages."""
        from nodeflow.graph.validator import validate_graph

        return validate_graph(self.nodes, self.connections)


def find_node(nodes: list[Node], node_id: str) -> Node | None:
    for node in nodes:
        if node.id == node_id:
            return node
    return None


def find_incoming(connections: list[Connection], node_id: str, port_id: str) -> Connection | None:
    """The connection feeding an input port, if any."""
    for conn in connections:
        if conn.to_node_id == node_id and conn.to_port_id == port_id:
            return conn
    return None


def find_outgoing(connections: list[Connection], node_id: str, port_id: str) -> list[Connection]:
    return [c for c in connections if c.from_node_id == node_id and c.from_port_id == port_id]


SubGraph.model_rebuild()
