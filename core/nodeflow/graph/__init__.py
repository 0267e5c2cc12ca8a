"""Graph structures, node contract and the execution engine."""

from nodeflow.graph.model import (
    DEFAULT_MAX_ITERATIONS,
    MAX_CYCLE_DEPTH_LIMIT,
    MAX_EXECUTION_STEPS,
    Connection,
    Graph,
    LogicalCategory,
    Node,
    NodeKind,
    OperationType,
    Port,
    PortType,
    Position,
    SubGraph,
    context_key,
)
from nodeflow.graph.errors import (
    NodeFlowError,
    NodeOperationError,
    StructuralCycleError,
    TerminalReason,
)
from nodeflow.graph.node import (
    FiredOutput,
    IterationContext,
    NodeDefinition,
    ResolveContext,
    StepContext,
    StepResult,
)
from nodeflow.graph.registry import NodeRegistry
from nodeflow.graph.resolver import DependencyPlan, resolve_dependencies
from nodeflow.graph.evaluator import DataEvaluator
from nodeflow.graph.dispatcher import DispatchSession, PulseDispatcher
from nodeflow.graph.engine import ExecutionResult, GraphEngine
from nodeflow.graph.validator import ConnectionCheck, can_connect, validate_graph

__all__ = [
    # Model
    "Connection",
    "Graph",
    "LogicalCategory",
    "Node",
    "NodeKind",
    "OperationType",
    "Port",
    "PortType",
    "Position",
    "SubGraph",
    "context_key",
    "DEFAULT_MAX_ITERATIONS",
    "MAX_CYCLE_DEPTH_LIMIT",
    "MAX_EXECUTION_STEPS",
    # Errors
    "NodeFlowError",
    "NodeOperationError",
    "StructuralCycleError",
    "TerminalReason",
    # Node contract
    "FiredOutput",
    "IterationContext",
    "NodeDefinition",
    "NodeRegistry",
    "ResolveContext",
    "StepContext",
    "StepResult",
    # Engine
    "DataEvaluator",
    "DependencyPlan",
    "DispatchSession",
    "ExecutionResult",
    "GraphEngine",
    "PulseDispatcher",
    "resolve_dependencies",
    # Validation
    "ConnectionCheck",
    "can_connect",
    "validate_graph",
]
