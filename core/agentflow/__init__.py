"""
agentflow - scheduler for visual agent flows.

Runs a graph of agent, tool, condition and human-input nodes for one chat
session: AND-joins, branch pruning after decisions, iteration sub-flows and
per-session cancellation.
"""

from agentflow.errors import AgentflowError, get_error_message
from agentflow.graph import (
    EdgeSpec,
    ExecutionResult,
    FlowExecutor,
    FlowGraph,
    NodeContext,
    NodeKind,
    NodeOutput,
    NodeProtocol,
    NodeRegistry,
    NodeSpec,
)
from agentflow.runtime import AbortRegistry, AbortToken, CachePool, EventBus, session_key

__all__ = [
    "AbortRegistry",
    "AbortToken",
    "AgentflowError",
    "CachePool",
    "EdgeSpec",
    "EventBus",
    "ExecutionResult",
    "FlowExecutor",
    "FlowGraph",
    "NodeContext",
    "NodeKind",
    "NodeOutput",
    "NodeProtocol",
    "NodeRegistry",
    "NodeSpec",
    "get_error_message",
    "session_key",
]
