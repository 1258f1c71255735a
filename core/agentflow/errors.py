"""Agentflow error hierarchy.

All framework-specific exceptions inherit from AgentflowError so callers get:
- A machine-readable error code
- A category and severity for routing and reporting
- A retry hint

Error Categories:
- FlowStructureError: graph shape problems detected before or at scheduling start
- FlowExecutionError: terminal run failures (deadlock, cancellation)
- InternalFlowError: errors carrying an HTTP status code for API callers

Node execution failures are NOT raised through this hierarchy; they travel
to dependents as ``NodeOutput.error``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """High-level error categories for classification."""

    GRAPH = "graph"
    EXECUTION = "execution"
    NODE = "node"
    INTERNAL = "internal"


class ErrorSeverity(StrEnum):
    """Error severity levels."""

    LOW = "low"  # Recoverable, can continue
    MEDIUM = "medium"  # Degraded operation, may retry
    HIGH = "high"  # Run cannot proceed


@dataclass
class ErrorContext:
    """Structured context for debugging errors."""

    flow_id: str | None = None
    run_id: str | None = None
    node_ids: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class AgentflowError(Exception):
    """Base exception for all agentflow errors.

    Example:
        result = await executor.execute(graph)
        if not result.success and result.error_code == DeadlockError.error_code:
            ...
    """

    error_code: str = "AGENTFLOW_ERROR"
    category: ErrorCategory = ErrorCategory.EXECUTION
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retry_allowed: bool = True

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        severity: ErrorSeverity | None = None,
        retry_allowed: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if severity is not None:
            self.severity = severity
        if retry_allowed is not None:
            self.retry_allowed = retry_allowed
        self.context = context or ErrorContext()
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retry_allowed": self.retry_allowed,
            "context": {
                "flow_id": self.context.flow_id,
                "run_id": self.context.run_id,
                "node_ids": list(self.context.node_ids),
                "metadata": self.context.metadata,
            },
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.error_code}, message={self.message!r})"


# =============================================================================
# Structural Errors
# =============================================================================


class FlowStructureError(AgentflowError):
    """Base exception for graph structure errors."""

    error_code = "FLOW_STRUCTURE_ERROR"
    category = ErrorCategory.GRAPH
    severity = ErrorSeverity.HIGH
    retry_allowed = False


class MultipleStartNodesError(FlowStructureError):
    """Raised when a top-level run has more than one starting node."""

    error_code = "MULTIPLE_START_NODES"

    def __init__(self, message: str = "Multiple starting nodes are not allowed", **kwargs: Any):
        super().__init__(message, **kwargs)


class GraphValidationError(FlowStructureError):
    """Raised when the flow graph references missing nodes or is otherwise malformed."""

    error_code = "GRAPH_VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []


class NodeNotFoundError(FlowStructureError):
    """Raised when a referenced node does not exist in the graph."""

    error_code = "NODE_NOT_FOUND"


class NodeExecutorNotFoundError(FlowStructureError):
    """Raised when no executor is registered for a node's kind."""

    error_code = "NODE_EXECUTOR_NOT_FOUND"


# =============================================================================
# Execution Errors
# =============================================================================


class FlowExecutionError(AgentflowError):
    """Base exception for terminal run failures."""

    error_code = "FLOW_EXECUTION_ERROR"
    category = ErrorCategory.EXECUTION


class DeadlockError(FlowExecutionError):
    """Raised when pending nodes remain but none can ever become ready."""

    error_code = "FLOW_DEADLOCK"
    severity = ErrorSeverity.HIGH
    retry_allowed = False


class RunCancelledError(FlowExecutionError):
    """Raised when a run is aborted through its session token."""

    error_code = "RUN_CANCELLED"
    severity = ErrorSeverity.LOW
    retry_allowed = False


# =============================================================================
# API-facing Errors
# =============================================================================


class InternalFlowError(AgentflowError):
    """Error with an HTTP status code, raised by services that back API routes.

    Example:
        raise InternalFlowError(404, f"Flow {flow_id} not found")
    """

    error_code = "INTERNAL_FLOW_ERROR"
    category = ErrorCategory.INTERNAL

    def __init__(self, status_code: int, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


def get_error_message(error: Any) -> str:
    """Extract a readable message from an exception, mapping, or arbitrary value."""
    if isinstance(error, AgentflowError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str):
        return error
    return str(error)
