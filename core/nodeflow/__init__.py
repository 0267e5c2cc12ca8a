"""
nodeflow - Execution engine for visual node graphs.

Graphs are made of typed nodes joined by DATA connections (values, resolved
on demand) and EXECUTION connections (control pulses, dispatched from
events). The engine resolves values, propagates pulses, and reports
everything through a RunState log.
"""

from nodeflow.graph import (
    Connection,
    ExecutionResult,
    Graph,
    GraphEngine,
    Node,
    NodeDefinition,
    NodeRegistry,
    OperationType,
    Port,
    PortType,
    TerminalReason,
)
from nodeflow.runtime import (
    EventBus,
    GlobalStateStore,
    LogSeverity,
    RunState,
    RunStatus,
    SteppingMode,
)

__version__ = "0.1.0"

__all__ = [
    "Connection",
    "EventBus",
    "ExecutionResult",
    "GlobalStateStore",
    "Graph",
    "GraphEngine",
    "LogSeverity",
    "Node",
    "NodeDefinition",
    "NodeRegistry",
    "OperationType",
    "Port",
    "PortType",
    "RunState",
    "RunStatus",
    "SteppingMode",
    "TerminalReason",
]
