"""Tests for the logging formatters and trace context propagation."""

import asyncio
import json
import logging

import pytest

from agentflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from agentflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


def _record(message, **extra):
    record = logging.LogRecord("agentflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_set_trace_context_merges():
    set_trace_context(run_id="run-1", flow_id="flow-1")
    set_trace_context(node_id="n1")

    assert get_trace_context() == {"run_id": "run-1", "flow_id": "flow-1", "node_id": "n1"}


def test_get_trace_context_returns_copy():
    set_trace_context(run_id="run-1")
    get_trace_context()["run_id"] = "changed"
    assert get_trace_context()["run_id"] == "run-1"


@pytest.mark.asyncio
async def test_node_context_does_not_leak_between_tasks():
    set_trace_context(run_id="run-1")
    seen = {}

    async def node_task(node_id):
        set_trace_context(node_id=node_id)
        await asyncio.sleep(0)
        seen[node_id] = get_trace_context()

    await asyncio.gather(node_task("a"), node_task("b"))

    assert seen["a"] == {"run_id": "run-1", "node_id": "a"}
    assert seen["b"] == {"run_id": "run-1", "node_id": "b"}
    assert get_trace_context() == {"run_id": "run-1"}


def test_structured_formatter_includes_context_and_extras():
    set_trace_context(run_id="run-1", flow_id="flow-1")
    record = _record("\033[32m✓ done\033[0m", event="node_completed", latency_ms=12)

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["message"] == "✓ done"
    assert entry["level"] == "info"
    assert entry["logger"] == "agentflow.test"
    assert entry["run_id"] == "run-1"
    assert entry["flow_id"] == "flow-1"
    assert entry["event"] == "node_completed"
    assert entry["latency_ms"] == 12
    assert "node_kind" not in entry


def test_human_formatter_prefix():
    set_trace_context(run_id="0123456789abcdef", flow_id="flow-1", node_id="llm_0")

    line = strip_ansi_codes(HumanReadableFormatter().format(_record("hello", event="node_started")))

    assert line == "[INFO    ] [run:01234567 | flow:flow-1 | node:llm_0] hello [node_started]"


def test_human_formatter_without_context():
    line = strip_ansi_codes(HumanReadableFormatter().format(_record("plain")))
    assert line == "[INFO    ] plain"


def test_configure_logging_selects_formatter(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "")
    root = logging.getLogger()
    original_handlers, original_level = root.handlers[:], root.level
    try:
        configure_logging(level="debug", format="json")
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.DEBUG

        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.setenv("ENV", "development")
        configure_logging(format="auto")
        assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)
        assert len(root.handlers) == 1
    finally:
        root.handlers[:] = original_handlers
        root.setLevel(original_level)
