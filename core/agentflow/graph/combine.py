"""Merge the outputs received by a join node into one input value."""

from collections.abc import Mapping
from typing import Any

from agentflow.graph.node import NodeOutput


def combine_inputs(received: Mapping[str, Any]) -> Any:
    """
    Combine predecessor outputs, keyed by predecessor id.

    - ``None`` entries are dropped; the rest are processed in sorted key order
    - no entry gives None, a single entry is returned unchanged
    - otherwise a NodeOutput is built:
        * json: predecessor id -> its json (bare values map to themselves);
          ``{"text": <joined>}`` when nothing carried json but text exists
        * text: every text, joined with newlines
        * binary: predecessor id -> its binary payload
        * error: the first error found
    """
    entries = sorted(
        ((key, value) for key, value in received.items() if value is not None),
        key=lambda item: item[0],
    )
    if not entries:
        return None
    if len(entries) == 1:
        return entries[0][1]

    json_data: dict[str, Any] = {}
    texts: list[str] = []
    binary: dict[str, Any] = {}
    error: Any = None

    for key, value in entries:
        output = NodeOutput.coerce(value)
        if output is None:
            json_data[key] = value
            continue
        if output.json_data is not None:
            json_data[key] = output.json_data
        if output.text is not None:
            texts.append(output.text)
        if output.binary:
            binary[key] = output.binary
        if error is None and output.error is not None:
            error = output.error

    text = "\n".join(texts) if texts else None
    if not json_data and text is not None:
        json_data = {"text": text}

    return NodeOutput(
        json_data=json_data or None,
        text=text,
        binary=binary or None,
        error=error,
    )
