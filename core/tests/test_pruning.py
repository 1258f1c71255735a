"""Tests for prune_targets."""

from agentflow.graph.edge import EdgeSpec
from agentflow.graph.node import NodeKind, NodeOutput, NodeSpec
from agentflow.graph.pruning import prune_targets

COND = NodeSpec(id="cond", kind=NodeKind.CONDITION)


def _branch(edge_id, target, slot, source="cond"):
    handle = f"{source}-output-{slot}" if slot is not None else None
    return EdgeSpec(id=edge_id, source=source, target=target, source_handle=handle)


def test_unfulfilled_slot_targets_pruned():
    edges = [_branch("e0", "a", 0), _branch("e1", "b", 1)]
    result = {"conditions": [{"isFulfilled": True}, {"isFulfilled": False}]}

    assert prune_targets(COND, result, edges) == {"b"}


def test_accepts_node_output_and_snake_case():
    edges = [_branch("e0", "a", 0), _branch("e1", "b", 1)]
    result = NodeOutput.model_validate(
        {"json": {}, "conditions": [{"is_fulfilled": False}, {"is_fulfilled": True}]}
    )

    assert prune_targets(COND, result, edges) == {"a"}


def test_all_targets_of_unfulfilled_slot():
    edges = [_branch("e0", "a", 0), _branch("e1", "b", 1), _branch("e2", "c", 1)]
    result = {"conditions": [{"isFulfilled": True}, {"isFulfilled": False}]}

    assert prune_targets(COND, result, edges) == {"b", "c"}


def test_missing_flag_and_absent_condition_count_as_unfulfilled():
    edges = [_branch("e0", "a", 0), _branch("e1", "b", 1), _branch("e2", "c", 2)]
    result = {"conditions": [{"isFulfilled": True}, {}]}

    assert prune_targets(COND, result, edges) == {"b", "c"}


def test_unparseable_slot_is_pruned():
    edges = [_branch("e0", "a", 0), _branch("e1", "b", None)]
    result = {"conditions": [{"isFulfilled": True}, {"isFulfilled": True}]}

    assert prune_targets(COND, result, edges) == {"b"}


def test_other_nodes_edges_ignored():
    edges = [_branch("e0", "a", 0), _branch("e1", "z", 1, source="elsewhere")]
    result = {"conditions": [{"isFulfilled": True}, {"isFulfilled": False}]}

    assert prune_targets(COND, result, edges) == set()


def test_non_decision_node_prunes_nothing():
    llm = NodeSpec(id="cond", kind=NodeKind.LLM)
    edges = [_branch("e0", "a", 0)]
    result = {"conditions": [{"isFulfilled": False}]}

    assert prune_targets(llm, result, edges) == set()


def test_result_without_conditions_prunes_nothing():
    edges = [_branch("e0", "a", 0)]

    assert prune_targets(COND, {"json": {"x": 1}}, edges) == set()
    assert prune_targets(COND, None, edges) == set()
    assert prune_targets(COND, "text", edges) == set()


def test_human_input_and_condition_agent_prune():
    edges = [_branch("e0", "approve", 0, "h"), _branch("e1", "reject", 1, "h")]
    result = {"conditions": [{"isFulfilled": False}, {"isFulfilled": True}]}

    for kind in (NodeKind.HUMAN_INPUT, NodeKind.CONDITION_AGENT):
        node = NodeSpec(id="h", kind=kind)
        assert prune_targets(node, result, edges) == {"approve"}
