"""Reason tags and exceptions for halted resolutions and dispatches."""

from enum import StrEnum


class TerminalReason(StrEnum):
    """Human-readable, machine-matchable reason a run ended."""

    SUCCESS = "Execution completed successfully."
    ERROR_CYCLE_DETECTED = "Execution halted: Cycle detected exceeding max depth."
    ERROR_RUNTIME_CYCLE_DETECTED = "Execution halted: Runtime cycle detected in execution path."
    ERROR_STRUCTURAL_CYCLE_IN_DEPENDENCIES = (
        "Resolution failed: Required dependency graph contains a cycle."
    )
    ERROR_MAX_STEPS_EXCEEDED = "Execution halted: Maximum execution steps exceeded."
    ERROR_OPERATION_FAILED = "Execution halted: Node operation failed."
    ERROR_TARGET_NODE_NOT_FOUND = "Resolution failed: Target node not found."
    ERROR_TARGET_PORT_NOT_FOUND = "Resolution failed: Target port not found."
    ERROR_TARGET_PORT_IS_EXECUTION = (
        "Resolution failed: Target port is an execution port and carries no data."
    )
    MANUAL_STOP = "Execution stopped manually."
    ERROR_INVALID_ITERATION_COLLECTION = (
        "Execution halted: ITERATE node 'Collection' input is not an array."
    )
    ERROR_STATE_ID_MISSING = (
        "Execution halted: STATE node is missing a 'State ID' in its configuration."
    )
    ERROR_EVENT_NAME_MISSING = (
        "Execution halted: ON_EVENT node is missing an 'Event Name' in its configuration."
    )
    ERROR_DIVISION_BY_ZERO = "Execution halted: Division by zero attempted."
    ERROR_INVALID_RANGE = (
        "Execution halted: Invalid range provided (e.g., Min >= Max for RANDOM_NUMBER)."
    )
    ERROR_INVALID_INPUT_TYPE = "Execution halted: Invalid input type for operation."
    ERROR_SWITCH_NO_MATCH = (
        "Execution Info: SWITCH node had no matching case and no default value defined."
    )
    ERROR_CHANNEL_NAME_MISSING = (
        "Execution halted: SEND_DATA or RECEIVE_DATA node is missing a 'Channel Name'."
    )


class NodeFlowError(Exception):
    """Base class for engine errors. Carries the reason recorded on the run."""

    reason: TerminalReason | str = TerminalReason.ERROR_OPERATION_FAILED

    def __init__(self, message: str, reason: TerminalReason | str | None = None):
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class StructuralCycleError(NodeFlowError):
    """The data-dependency graph of a target contains a cycle."""

    reason = TerminalReason.ERROR_STRUCTURAL_CYCLE_IN_DEPENDENCIES

    def __init__(self, message: str, cycle_node_id: str | None = None):
        super().__init__(message)
        self.cycle_node_id = cycle_node_id


class TargetNotFoundError(NodeFlowError):
    reason = TerminalReason.ERROR_TARGET_NODE_NOT_FOUND


class TargetPortNotFoundError(NodeFlowError):
    reason = TerminalReason.ERROR_TARGET_PORT_NOT_FOUND


class ExecutionPortRequestedError(NodeFlowError):
    reason = TerminalReason.ERROR_TARGET_PORT_IS_EXECUTION


class RuntimeCycleError(NodeFlowError):
    reason = TerminalReason.ERROR_RUNTIME_CYCLE_DETECTED


class MaxStepsExceededError(NodeFlowError):
    reason = TerminalReason.ERROR_MAX_STEPS_EXCEEDED


class NodeOperationError(NodeFlowError):
    """Raised by node functions; the reason defaults to a generic operation failure."""


class SubResolutionError(NodeFlowError):
    """An on-demand data pull made by an execution step failed."""


class InvalidStatusTransition(NodeFlowError):
    """A run status change outside the state machine was attempted."""
