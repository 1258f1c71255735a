"""Branch pruning after a decision node has run."""

import logging
from typing import Any

from agentflow.graph.edge import EdgeSpec, outgoing_edges
from agentflow.graph.node import BranchCondition, NodeOutput, NodeSpec

logger = logging.getLogger(__name__)


def _conditions_of(result: Any) -> list[BranchCondition] | None:
    output = NodeOutput.coerce(result)
    if output is not None:
        return output.conditions
    if isinstance(result, dict) and isinstance(result.get("conditions"), list):
        return [BranchCondition.model_validate(c) for c in result["conditions"]]
    return None


def prune_targets(decision_node: NodeSpec, decision_result: Any, edges: list[EdgeSpec]) -> set[str]:
    """
    Targets of the decision node's outgoing edges whose branch was not taken.

    An edge's branch is not taken when its slot index points at an absent or
    unfulfilled condition; an unparseable slot counts as absent. Only direct
    targets are returned; the executor extends the set transitively.
    """
    if not decision_node.is_decision:
        return set()
    conditions = _conditions_of(decision_result)
    if conditions is None:
        return set()

    pruned: set[str] = set()
    for edge in outgoing_edges(edges, decision_node.id):
        slot = edge.source_slot
        if slot is not None and 0 <= slot < len(conditions) and conditions[slot].is_fulfilled:
            continue
        pruned.add(edge.target)

    if pruned:
        logger.debug(f"✂ {decision_node.id} pruned branches: {sorted(pruned)}")
    return pruned
