"""
Edge Protocol - How nodes connect in a flow graph.

Edges define:
1. Source and target nodes
2. The source's output slot (branch index), encoded in the source handle
3. The target's input slot

Decision nodes expose one output slot per branch; the slot index of an edge
is what ties it to the matching entry in the decision result's ``conditions``.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from agentflow.graph.node import NodeKind, NodeSpec

logger = logging.getLogger(__name__)


def parse_slot_index(handle: str | None) -> int | None:
    """Return the integer after the last ``-`` in a handle, or None."""
    if not handle:
        return None
    tail = handle.rsplit("-", 1)[-1].strip()
    try:
        return int(tail)
    except ValueError:
        return None


class EdgeSpec(BaseModel):
    """
    Definition of an edge between nodes.

    Examples:
        # Plain connection
        EdgeSpec(id="e1", source="start_0", target="llm_0")

        # Second branch of a condition node
        EdgeSpec(
            id="e2",
            source="cond_0",
            source_handle="cond_0-output-1",
            target="tool_1",
        )
    """

    id: str
    source: str = Field(description="Source node ID")
    source_handle: str | None = Field(
        default=None,
        validation_alias=AliasChoices("source_handle", "sourceHandle"),
        description='Output slot handle, e.g. "<id>-output-<n>"',
    )
    target: str = Field(description="Target node ID")
    target_handle: str | None = Field(
        default=None, validation_alias=AliasChoices("target_handle", "targetHandle")
    )

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @property
    def source_slot(self) -> int | None:
        return parse_slot_index(self.source_handle)


def incoming_edges(edges: list[EdgeSpec], target_id: str) -> list[EdgeSpec]:
    """Edges entering ``target_id``, ordered by source slot index.

    Edges whose slot cannot be parsed keep their relative order after all
    parsed ones.
    """
    matching = [e for e in edges if e.target == target_id]
    parsed = [e for e in matching if e.source_slot is not None]
    unparsed = [e for e in matching if e.source_slot is None]
    # sorted() is stable, so equal slots keep declaration order
    return sorted(parsed, key=lambda e: e.source_slot) + unparsed


def outgoing_edges(edges: list[EdgeSpec], source_id: str) -> list[EdgeSpec]:
    return [e for e in edges if e.source == source_id]


class FlowGraph(BaseModel):
    """
    Complete definition of an agent flow.

    Top-level flow with an iteration block:
        FlowGraph(
            id="support-flow",
            nodes=[
                NodeSpec(id="start_0", kind=NodeKind.START),
                NodeSpec(id="iter_0", kind=NodeKind.ITERATION),
                NodeSpec(id="llm_0", kind=NodeKind.LLM, parent_node="iter_0", extent="parent"),
                NodeSpec(id="tool_0", kind=NodeKind.TOOL),
            ],
            edges=[
                EdgeSpec(id="e1", source="start_0", target="iter_0"),
                EdgeSpec(id="e2", source="iter_0", target="tool_0"),
            ],
        )
    """

    id: str = ""
    name: str = ""
    nodes: list[NodeSpec] = Field(default_factory=list, description="All node definitions")
    edges: list[EdgeSpec] = Field(default_factory=list, description="All edge definitions")

    model_config = ConfigDict(extra="allow")

    @classmethod
    def from_file(cls, path: str | Path) -> "FlowGraph":
        """Load a flow graph from a JSON document."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        graph = cls.model_validate(data)
        logger.debug(
            f"Loaded flow '{graph.id or Path(path).stem}': "
            f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"
        )
        return graph

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_map(self) -> dict[str, NodeSpec]:
        return {node.id: node for node in self.nodes}

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node."""
        return outgoing_edges(self.edges, node_id)

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node, ordered by source slot."""
        return incoming_edges(self.edges, node_id)

    def get_starting_node_ids(self) -> list[str]:
        """Nodes without incoming edges, in declaration order."""
        targets = {e.target for e in self.edges}
        return [node.id for node in self.nodes if node.id not in targets]

    def scoped(self, parent_node_id: str | None = None) -> "FlowGraph":
        """
        Restrict the graph to one scheduling scope.

        With no parent, keeps the top-level nodes (those not nested in an
        iteration). With a parent, keeps that iteration node's children.
        Edges are kept only when both ends are in scope.
        """
        if parent_node_id is None:
            nodes = [n for n in self.nodes if not n.parent_node and not n.is_nested]
        else:
            nodes = [n for n in self.nodes if n.parent_node == parent_node_id]
        ids = {n.id for n in nodes}
        edges = [e for e in self.edges if e.source in ids and e.target in ids]
        return FlowGraph(id=self.id, name=self.name, nodes=nodes, edges=edges)

    def validate(self) -> list[str]:  # type: ignore[override]
        """Validate the graph structure."""
        errors = []

        # Check for duplicate node IDs
        seen_ids: set[str] = set()
        for node in self.nodes:
            if node.id in seen_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_ids.add(node.id)

        # Check edge references
        seen_edges: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edges:
                errors.append(f"Duplicate edge ID: '{edge.id}'")
            seen_edges.add(edge.id)
            if edge.source not in seen_ids:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen_ids:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        # Check iteration nesting
        nodes = self.node_map()
        for node in self.nodes:
            if not node.parent_node:
                continue
            parent = nodes.get(node.parent_node)
            if parent is None:
                errors.append(
                    f"Node '{node.id}' references missing parent node '{node.parent_node}'"
                )
            elif parent.kind != NodeKind.ITERATION:
                errors.append(
                    f"Node '{node.id}' is nested in '{parent.id}', "
                    f"which is not an iteration node (kind={parent.kind})"
                )

        return errors

    def describe(self) -> dict[str, Any]:
        """Summary used by the CLI."""
        return {
            "id": self.id,
            "name": self.name,
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "starting_nodes": self.get_starting_node_ids(),
        }
