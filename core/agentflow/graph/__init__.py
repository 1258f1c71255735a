"""Flow graph model, join analysis and the scheduler."""

from agentflow.graph.combine import combine_inputs
from agentflow.graph.dependencies import (
    WaitingNode,
    can_become_ready,
    find_decision_ancestor,
    is_ready,
    setup_dependencies,
)
from agentflow.graph.edge import EdgeSpec, FlowGraph, incoming_edges, outgoing_edges
from agentflow.graph.executor import (
    ExecutionResult,
    FlowExecutor,
    NodeState,
    RunContext,
    RunStatus,
)
from agentflow.graph.node import (
    BranchCondition,
    NodeContext,
    NodeKind,
    NodeOutput,
    NodeProtocol,
    NodeRegistry,
    NodeSpec,
)
from agentflow.graph.pruning import prune_targets
from agentflow.graph.validator import (
    ValidationResult,
    check_for_multiple_start_nodes,
    validate_flow,
)

__all__ = [
    # Graph model
    "NodeKind",
    "NodeSpec",
    "EdgeSpec",
    "FlowGraph",
    "incoming_edges",
    "outgoing_edges",
    # Node execution
    "BranchCondition",
    "NodeOutput",
    "NodeContext",
    "NodeProtocol",
    "NodeRegistry",
    # Join analysis
    "WaitingNode",
    "setup_dependencies",
    "find_decision_ancestor",
    "is_ready",
    "can_become_ready",
    "combine_inputs",
    "prune_targets",
    # Validation
    "ValidationResult",
    "check_for_multiple_start_nodes",
    "validate_flow",
    # Executor
    "FlowExecutor",
    "ExecutionResult",
    "RunContext",
    "NodeState",
    "RunStatus",
]
