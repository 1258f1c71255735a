"""Tests for the agentflow error hierarchy."""

from agentflow.errors import (
    AgentflowError,
    DeadlockError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    FlowExecutionError,
    FlowStructureError,
    GraphValidationError,
    InternalFlowError,
    MultipleStartNodesError,
    RunCancelledError,
    get_error_message,
)


def test_hierarchy():
    assert issubclass(MultipleStartNodesError, FlowStructureError)
    assert issubclass(GraphValidationError, FlowStructureError)
    assert issubclass(DeadlockError, FlowExecutionError)
    assert issubclass(RunCancelledError, FlowExecutionError)
    assert issubclass(InternalFlowError, AgentflowError)


def test_multiple_start_nodes_defaults():
    error = MultipleStartNodesError()

    assert str(error) == "Multiple starting nodes are not allowed"
    assert error.error_code == "MULTIPLE_START_NODES"
    assert error.category == ErrorCategory.GRAPH
    assert error.severity == ErrorSeverity.HIGH
    assert error.retry_allowed is False


def test_overrides_and_to_dict():
    cause = ValueError("root")
    error = DeadlockError(
        "stuck",
        severity=ErrorSeverity.MEDIUM,
        context=ErrorContext(flow_id="f", run_id="r", node_ids=["a"]),
        cause=cause,
    )

    assert error.__cause__ is cause
    assert error.to_dict() == {
        "error_code": "FLOW_DEADLOCK",
        "message": "stuck",
        "category": "execution",
        "severity": "medium",
        "retry_allowed": False,
        "context": {"flow_id": "f", "run_id": "r", "node_ids": ["a"], "metadata": {}},
    }
    assert repr(error) == "DeadlockError(code=FLOW_DEADLOCK, message='stuck')"


def test_graph_validation_error_keeps_details():
    error = GraphValidationError("bad graph", errors=["e1", "e2"])
    assert error.errors == ["e1", "e2"]
    assert GraphValidationError("bad").errors == []


def test_internal_flow_error_status_code():
    error = InternalFlowError(404, "Flow abc not found")

    assert error.status_code == 404
    assert error.message == "Flow abc not found"
    assert error.to_dict()["status_code"] == 404
    assert error.category == ErrorCategory.INTERNAL


class TestGetErrorMessage:
    def test_agentflow_error(self):
        assert get_error_message(InternalFlowError(500, "boom")) == "boom"

    def test_plain_exception(self):
        assert get_error_message(RuntimeError("bad")) == "bad"
        assert get_error_message(RuntimeError()) == "RuntimeError"

    def test_mapping_with_message(self):
        assert get_error_message({"message": "from dict", "code": 1}) == "from dict"

    def test_string(self):
        assert get_error_message("just text") == "just text"

    def test_fallback(self):
        assert get_error_message(42) == "42"
        assert get_error_message({"code": 1}) == "{'code': 1}"
