"""Shared fixtures and a small graph builder for engine tests."""

from typing import Any

import pytest

from nodeflow.config import EngineConfig
from nodeflow.graph.engine import GraphEngine
from nodeflow.graph.model import Connection, Node, OperationType, PortType, SubGraph
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes import build_default_registry, create_atomic_node
from nodeflow.observability import clear_trace_context


def make_config(**overrides: Any) -> EngineConfig:
    """EngineConfig with explicit values so tests never read ~/.nodeflow."""
    values = {
        "max_execution_steps": 1000,
        "max_cycle_depth": 10,
        "default_max_iterations": 100,
        "log_level": "DEBUG",
        "log_format": "human",
    }
    values.update(overrides)
    return EngineConfig(**values)


class GraphBuilder:
    """Collects nodes and connections with readable, deterministic ids."""

    def __init__(self, registry: NodeRegistry):
        self.registry = registry
        self.nodes: list[Node] = []
        self.connections: list[Connection] = []

    def add(self, operation_type: OperationType, node_id: str, **config: Any) -> Node:
        node = create_atomic_node(self.registry, operation_type, node_id=node_id, config=config)
        self.nodes.append(node)
        return node

    def add_node(self, node: Node) -> Node:
        self.nodes.append(node)
        return node

    def wire(
        self,
        source: Node,
        output_name: str,
        target: Node,
        input_name: str,
        port_type: PortType = PortType.DATA,
    ) -> Connection:
        from_port = source.output_port(output_name, port_type)
        to_port = target.input_port(input_name, port_type)
        assert from_port is not None, f"{source.id} has no {port_type} output '{output_name}'"
        assert to_port is not None, f"{target.id} has no {port_type} input '{input_name}'"
        conn = Connection(
            id=f"{source.id}.{output_name}->{target.id}.{input_name}",
            from_node_id=source.id,
            from_port_id=from_port.id,
            to_node_id=target.id,
            to_port_id=to_port.id,
        )
        self.connections.append(conn)
        return conn

    def pulse(self, source: Node, output_name: str, target: Node, input_name: str) -> Connection:
        return self.wire(source, output_name, target, input_name, PortType.EXECUTION)

    def override(self, node: Node, input_name: str, value: Any) -> None:
        port = node.input_port(input_name)
        assert port is not None, f"{node.id} has no data input '{input_name}'"
        node.config.setdefault("input_port_overrides", {})[port.id] = value

    def sub_graph(self) -> SubGraph:
        return SubGraph(nodes=self.nodes, connections=self.connections)


def times_ten_body(registry: NodeRegistry) -> SubGraph:
    """ITERATE body: result = item * 10."""
    body = GraphBuilder(registry)
    item = body.add(OperationType.LOOP_ITEM, "item")
    mul = body.add(OperationType.MULTIPLY, "mul")
    result = body.add(OperationType.ITERATION_RESULT, "result")
    body.wire(item, "Item", mul, "Operand A")
    body.override(mul, "Operand B", 10)
    body.wire(mul, "Product", result, "Value")
    return body.sub_graph()


def assign_chain(builder: GraphBuilder, length: int, value: Any = 7) -> list[Node]:
    """VALUE_PROVIDER "v" feeding `length` ASSIGN nodes in a line, "a0" first."""
    previous, previous_port = builder.add(OperationType.VALUE_PROVIDER, "v", value=value), "Value"
    chain = []
    for i in range(length):
        node = builder.add(OperationType.ASSIGN, f"a{i}")
        builder.wire(previous, previous_port, node, "Input")
        previous, previous_port = node, "Output"
        chain.append(node)
    return chain


def out_port(node: Node, name: str) -> str:
    port = node.output_port(name)
    assert port is not None
    return port.id


def log_messages(state, prefix: str = "") -> list[str]:
    return [entry.message for entry in state.log if entry.message.startswith(prefix)]


@pytest.fixture(autouse=True)
def _reset_trace_context():
    yield
    clear_trace_context()


@pytest.fixture
def registry() -> NodeRegistry:
    return build_default_registry()


@pytest.fixture
def config() -> EngineConfig:
    return make_config()


@pytest.fixture
def engine(registry, config) -> GraphEngine:
    return GraphEngine(registry=registry, config=config)


@pytest.fixture
def builder(registry) -> GraphBuilder:
    return GraphBuilder(registry)
