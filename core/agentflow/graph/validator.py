"""Structural validation for flow graphs.

Runs before scheduling starts so that malformed flows fail without any node
being invoked.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from agentflow.errors import (
    FlowStructureError,
    GraphValidationError,
    MultipleStartNodesError,
    NodeExecutorNotFoundError,
)
from agentflow.graph.edge import FlowGraph
from agentflow.graph.node import NodeKind, NodeRegistry, NodeSpec

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a flow graph."""

    starting_node_ids: list[str] = field(default_factory=list)
    errors: list[FlowStructureError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(e.message for e in self.errors) if self.errors else ""


def check_for_multiple_start_nodes(
    starting_ids: list[str],
    is_recursive: bool,
    nodes: Mapping[str, NodeSpec] | Iterable[NodeSpec],
) -> tuple[list[str], MultipleStartNodesError | None]:
    """
    Filter nested nodes out of the starting ids and check that one remains.

    Returns ``(filtered_ids, error)``. The input list is never modified.
    Recursive runs (iteration bodies) are not constrained.
    """
    if is_recursive:
        return list(starting_ids), None

    node_map = nodes if isinstance(nodes, Mapping) else {n.id: n for n in nodes}
    filtered = [
        node_id
        for node_id in starting_ids
        if not (node_map.get(node_id) is not None and node_map[node_id].is_nested)
    ]
    if len(filtered) > 1:
        return filtered, MultipleStartNodesError()
    return filtered, None


def validate_flow(
    graph: FlowGraph,
    *,
    is_recursive: bool = False,
    registry: NodeRegistry | None = None,
) -> ValidationResult:
    """
    Run every structural check the executor needs before scheduling.

    - edge and nesting references (``FlowGraph.validate``)
    - a single top-level starting node (non-recursive runs only)
    - an executor for every node kind when a registry is given
    """
    result = ValidationResult()

    graph_errors = graph.validate()
    if graph_errors:
        result.errors.append(
            GraphValidationError(
                f"Invalid flow graph: {'; '.join(graph_errors)}", errors=graph_errors
            )
        )

    starting_ids, start_error = check_for_multiple_start_nodes(
        graph.get_starting_node_ids(), is_recursive, graph.nodes
    )
    result.starting_node_ids = starting_ids
    if start_error is not None:
        start_error.context.node_ids = list(starting_ids)
        result.errors.append(start_error)

    if registry is not None:
        for node in graph.nodes:
            # Iteration nodes are run by the executor itself
            if node.kind == NodeKind.ITERATION:
                continue
            if registry.resolve(node) is None:
                result.errors.append(
                    NodeExecutorNotFoundError(
                        f"No executor registered for node '{node.id}' (kind={node.kind})"
                    )
                )

    for error in result.errors:
        logger.debug(f"Structural error: {error.message}")
    return result
