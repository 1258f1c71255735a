"""
Join requirements for flow nodes.

Every node waits on its direct predecessors. A predecessor that exists only
because some decision node picked its branch is not a hard dependency: all
predecessors gated by the same decision form a conditional group, and one
arrival from the group is enough (OR within a group, AND across groups and
with the plain expected inputs).
"""

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from agentflow.graph.edge import EdgeSpec, incoming_edges
from agentflow.graph.node import NodeSpec


@dataclass
class WaitingNode:
    """Per-run scheduling state for one node."""

    node_id: str
    received_inputs: dict[str, Any] = field(default_factory=dict)
    expected_inputs: set[str] = field(default_factory=set)
    conditional_groups: dict[str, set[str]] = field(default_factory=dict)

    @property
    def is_conditional(self) -> bool:
        return bool(self.conditional_groups)

    @property
    def required_ids(self) -> set[str]:
        ids = set(self.expected_inputs)
        for members in self.conditional_groups.values():
            ids |= members
        return ids

    def receive(self, predecessor_id: str, output: Any) -> None:
        self.received_inputs[predecessor_id] = output


def _as_node_map(nodes: Mapping[str, NodeSpec] | Iterable[NodeSpec]) -> Mapping[str, NodeSpec]:
    if isinstance(nodes, Mapping):
        return nodes
    return {node.id: node for node in nodes}


def find_decision_ancestor(
    start_id: str,
    edges: list[EdgeSpec],
    nodes: Mapping[str, NodeSpec] | Iterable[NodeSpec],
) -> str | None:
    """
    Return the decision node that gates ``start_id``, if any.

    ``start_id`` itself counts when it is a decision node. Otherwise walks up
    the incoming edges breadth-first, so the nearest decision ancestor wins.
    Each node is visited once; cycles terminate. Unknown ids yield None.
    """
    node_map = _as_node_map(nodes)
    start = node_map.get(start_id)
    if start is None:
        return None
    if start.is_decision:
        return start_id

    visited = {start_id}
    queue = deque([start_id])
    while queue:
        current = queue.popleft()
        for edge in incoming_edges(edges, current):
            parent_id = edge.source
            if parent_id in visited:
                continue
            visited.add(parent_id)
            parent = node_map.get(parent_id)
            if parent is None:
                continue
            if parent.is_decision:
                return parent_id
            queue.append(parent_id)
    return None


def setup_dependencies(
    node_id: str,
    edges: list[EdgeSpec],
    nodes: Mapping[str, NodeSpec] | Iterable[NodeSpec],
) -> WaitingNode:
    """Build the WaitingNode for ``node_id`` from the static graph."""
    node_map = _as_node_map(nodes)
    waiting = WaitingNode(node_id=node_id)
    for edge in incoming_edges(edges, node_id):
        predecessor = edge.source
        decision_id = find_decision_ancestor(predecessor, edges, node_map)
        if decision_id is not None:
            waiting.conditional_groups.setdefault(decision_id, set()).add(predecessor)
        else:
            waiting.expected_inputs.add(predecessor)
    return waiting


def is_ready(waiting: WaitingNode) -> bool:
    """True when every expected input and one member of every group has arrived."""
    received = waiting.received_inputs.keys()
    if not waiting.expected_inputs.issubset(received):
        return False
    return all(not members.isdisjoint(received) for members in waiting.conditional_groups.values())


def can_become_ready(waiting: WaitingNode, ignored: set[str]) -> bool:
    """False once an ignored predecessor makes readiness unreachable.

    That is the case when an expected input was ignored before delivering, or
    when every member of a conditional group was ignored and none delivered.
    """
    received = waiting.received_inputs.keys()
    for predecessor in waiting.expected_inputs:
        if predecessor in ignored and predecessor not in received:
            return False
    for members in waiting.conditional_groups.values():
        if members.isdisjoint(received) and members <= ignored:
            return False
    return True
