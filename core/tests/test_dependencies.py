"""
Tests for join analysis: decision ancestors, WaitingNode construction and
readiness.
"""

from agentflow.graph.dependencies import (
    WaitingNode,
    can_become_ready,
    find_decision_ancestor,
    is_ready,
    setup_dependencies,
)
from agentflow.graph.edge import EdgeSpec
from agentflow.graph.node import NodeKind, NodeSpec


def _nodes(**kinds):
    return [NodeSpec(id=node_id, kind=kind) for node_id, kind in kinds.items()]


def _edges(*pairs):
    return [EdgeSpec(id=f"{s}->{t}", source=s, target=t) for s, t in pairs]


class TestFindDecisionAncestor:
    def test_decision_node_returns_itself(self):
        for kind in (NodeKind.CONDITION, NodeKind.CONDITION_AGENT, NodeKind.HUMAN_INPUT):
            nodes = _nodes(d=kind)
            assert find_decision_ancestor("d", [], nodes) == "d"

    def test_finds_upstream_decision(self):
        nodes = _nodes(
            start=NodeKind.START, cond=NodeKind.CONDITION, a=NodeKind.LLM, b=NodeKind.TOOL
        )
        edges = _edges(("start", "cond"), ("cond", "a"), ("a", "b"))
        assert find_decision_ancestor("b", edges, nodes) == "cond"

    def test_no_decision_ancestor(self):
        nodes = _nodes(start=NodeKind.START, a=NodeKind.LLM, b=NodeKind.AGENT)
        edges = _edges(("start", "a"), ("a", "b"))
        assert find_decision_ancestor("b", edges, nodes) is None

    def test_unknown_node(self):
        assert find_decision_ancestor("ghost", [], _nodes(a=NodeKind.LLM)) is None

    def test_cycle_terminates(self):
        nodes = _nodes(a=NodeKind.LLM, b=NodeKind.TOOL, c=NodeKind.AGENT)
        edges = _edges(("a", "b"), ("b", "c"), ("c", "a"))
        assert find_decision_ancestor("c", edges, nodes) is None

    def test_cycle_through_decision(self):
        nodes = _nodes(a=NodeKind.LLM, h=NodeKind.HUMAN_INPUT, b=NodeKind.TOOL)
        edges = _edges(("a", "h"), ("h", "b"), ("b", "a"))
        assert find_decision_ancestor("a", edges, nodes) == "h"

    def test_nearest_decision_wins(self):
        nodes = _nodes(
            outer=NodeKind.CONDITION,
            x=NodeKind.LLM,
            inner=NodeKind.CONDITION_AGENT,
            y=NodeKind.TOOL,
        )
        edges = _edges(("outer", "x"), ("x", "inner"), ("inner", "y"))
        assert find_decision_ancestor("y", edges, nodes) == "inner"

    def test_accepts_node_mapping(self):
        nodes = {n.id: n for n in _nodes(cond=NodeKind.CONDITION, a=NodeKind.LLM)}
        assert find_decision_ancestor("a", _edges(("cond", "a")), nodes) == "cond"


class TestSetupDependencies:
    def test_plain_fan_in_is_and_join(self):
        nodes = _nodes(start=NodeKind.START, a=NodeKind.LLM, b=NodeKind.TOOL, merge=NodeKind.AGENT)
        edges = _edges(("start", "a"), ("start", "b"), ("a", "merge"), ("b", "merge"))

        waiting = setup_dependencies("merge", edges, nodes)

        assert waiting.expected_inputs == {"a", "b"}
        assert waiting.conditional_groups == {}
        assert waiting.is_conditional is False

    def test_conditional_merge_groups_by_decision(self):
        nodes = _nodes(
            condition1=NodeKind.CONDITION,
            branchA=NodeKind.LLM,
            branchB=NodeKind.LLM,
            merge=NodeKind.AGENT,
        )
        edges = _edges(
            ("condition1", "branchA"),
            ("condition1", "branchB"),
            ("branchA", "merge"),
            ("branchB", "merge"),
        )

        waiting = setup_dependencies("merge", edges, nodes)

        assert waiting.is_conditional is True
        assert waiting.conditional_groups == {"condition1": {"branchA", "branchB"}}
        assert waiting.expected_inputs == set()

    def test_mixed_requirements_and_multiple_decisions(self):
        nodes = _nodes(
            start=NodeKind.START,
            c1=NodeKind.CONDITION,
            c2=NodeKind.HUMAN_INPUT,
            a=NodeKind.LLM,
            b=NodeKind.LLM,
            plain=NodeKind.TOOL,
            join=NodeKind.AGENT,
        )
        edges = _edges(
            ("start", "c1"),
            ("start", "c2"),
            ("start", "plain"),
            ("c1", "a"),
            ("c2", "b"),
            ("a", "join"),
            ("b", "join"),
            ("plain", "join"),
        )

        waiting = setup_dependencies("join", edges, nodes)

        assert waiting.expected_inputs == {"plain"}
        assert waiting.conditional_groups == {"c1": {"a"}, "c2": {"b"}}
        assert waiting.required_ids == {"plain", "a", "b"}

    def test_direct_decision_predecessor(self):
        nodes = _nodes(cond=NodeKind.CONDITION, t=NodeKind.LLM)
        waiting = setup_dependencies("t", _edges(("cond", "t")), nodes)
        assert waiting.conditional_groups == {"cond": {"cond"}}

    def test_entry_node_has_no_requirements(self):
        waiting = setup_dependencies("start", [], _nodes(start=NodeKind.START))
        assert waiting.required_ids == set()
        assert is_ready(waiting)


class TestIsReady:
    def test_expected_inputs_all_required(self):
        waiting = WaitingNode(node_id="n", expected_inputs={"a", "b"})
        assert not is_ready(waiting)

        waiting.receive("a", {"text": "x"})
        assert not is_ready(waiting)

        waiting.receive("b", None)
        assert is_ready(waiting)

    def test_one_member_per_group(self):
        waiting = WaitingNode(
            node_id="n",
            conditional_groups={"c1": {"a", "b"}, "c2": {"x", "y"}},
        )
        waiting.receive("a", 1)
        assert not is_ready(waiting)

        waiting.receive("y", 2)
        assert is_ready(waiting)

    def test_groups_and_expected_combined(self):
        waiting = WaitingNode(
            node_id="n",
            expected_inputs={"plain"},
            conditional_groups={"c1": {"a", "b"}},
        )
        waiting.receive("b", 1)
        assert not is_ready(waiting)
        waiting.receive("plain", 2)
        assert is_ready(waiting)


class TestCanBecomeReady:
    def test_ignored_expected_input_blocks(self):
        waiting = WaitingNode(node_id="n", expected_inputs={"a", "b"})
        assert can_become_ready(waiting, set())
        assert not can_become_ready(waiting, {"a"})

    def test_ignored_after_delivery_does_not_block(self):
        waiting = WaitingNode(node_id="n", expected_inputs={"a"})
        waiting.receive("a", 1)
        assert can_become_ready(waiting, {"a"})

    def test_group_needs_one_surviving_member(self):
        waiting = WaitingNode(node_id="n", conditional_groups={"c": {"a", "b"}})
        assert can_become_ready(waiting, {"a"})
        assert not can_become_ready(waiting, {"a", "b"})
