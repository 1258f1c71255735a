"""
Command-line interface for agentflow.

Usage:
    agentflow validate flows/support.json
    agentflow inspect flows/support.json
    agentflow parse-form "name: John\\nemail: john@example.com"
    echo "time: 10:30:00" | agentflow parse-form
"""

import argparse
import json
import sys
from pathlib import Path

from agentflow.config import RuntimeConfig
from agentflow.graph.dependencies import setup_dependencies
from agentflow.graph.edge import FlowGraph
from agentflow.graph.validator import validate_flow
from agentflow.observability import configure_logging
from agentflow.utils.forms import parse_form_string


def _load_graph(path: str) -> FlowGraph | None:
    flow_path = Path(path)
    if not flow_path.exists():
        print(f"Error: flow file not found: {flow_path}", file=sys.stderr)
        return None
    try:
        return FlowGraph.from_file(flow_path)
    except (json.JSONDecodeError, ValueError) as e:
        print(f"Error: could not load {flow_path}: {e}", file=sys.stderr)
        return None


def cmd_validate(args: argparse.Namespace) -> int:
    """Report structural errors in a flow file."""
    graph = _load_graph(args.flow)
    if graph is None:
        return 1

    result = validate_flow(graph, is_recursive=args.recursive)
    if args.json:
        payload = {
            "valid": result.success,
            "starting_nodes": result.starting_node_ids,
            "errors": [e.to_dict() for e in result.errors],
        }
        print(json.dumps(payload, indent=2))
        return 0 if result.success else 1

    if result.success:
        print(f"✓ {graph.id or args.flow} is valid ({len(graph.nodes)} nodes)")
        return 0
    print(f"✗ {graph.id or args.flow} has {len(result.errors)} error(s):")
    for error in result.errors:
        print(f"  • [{error.error_code}] {error.message}")
    return 1


def cmd_inspect(args: argparse.Namespace) -> int:
    """Print the join requirements of every node."""
    graph = _load_graph(args.flow)
    if graph is None:
        return 1

    node_map = graph.node_map()
    rows = []
    for node in graph.nodes:
        waiting = setup_dependencies(node.id, graph.edges, node_map)
        rows.append(
            {
                "id": node.id,
                "kind": str(node.kind),
                "nested_in": node.parent_node,
                "expected_inputs": sorted(waiting.expected_inputs),
                "conditional_groups": {
                    decision: sorted(members)
                    for decision, members in sorted(waiting.conditional_groups.items())
                },
            }
        )

    if args.json:
        print(json.dumps({"flow": graph.describe(), "nodes": rows}, indent=2))
        return 0

    summary = graph.describe()
    print(
        f"Flow: {summary['id'] or args.flow}  "
        f"({summary['nodes']} nodes, {summary['edges']} edges)"
    )
    print(f"Starting nodes: {', '.join(summary['starting_nodes']) or '-'}")
    for row in rows:
        nested = f" in {row['nested_in']}" if row["nested_in"] else ""
        print(f"\n{row['id']} [{row['kind']}]{nested}")
        if row["expected_inputs"]:
            print(f"  waits for all of: {', '.join(row['expected_inputs'])}")
        for decision, members in row["conditional_groups"].items():
            print(f"  waits for one of: {', '.join(members)}  (gated by {decision})")
        if not row["expected_inputs"] and not row["conditional_groups"]:
            print("  entry node")
    return 0


def cmd_parse_form(args: argparse.Namespace) -> int:
    """Parse key: value lines from an argument or stdin."""
    text = args.text if args.text is not None else sys.stdin.read()
    print(json.dumps(parse_form_string(text), indent=2))
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the agentflow subcommands."""
    validate_parser = subparsers.add_parser(
        "validate", help="Check a flow file for structural errors"
    )
    validate_parser.add_argument("flow", help="Path to a flow JSON file")
    validate_parser.add_argument(
        "--recursive",
        action="store_true",
        help="Validate as an iteration body (no single-entry constraint)",
    )
    validate_parser.add_argument("--json", action="store_true", help="Output as JSON")
    validate_parser.set_defaults(func=cmd_validate)

    inspect_parser = subparsers.add_parser("inspect", help="Show each node's join requirements")
    inspect_parser.add_argument("flow", help="Path to a flow JSON file")
    inspect_parser.add_argument("--json", action="store_true", help="Output as JSON")
    inspect_parser.set_defaults(func=cmd_inspect)

    form_parser = subparsers.add_parser("parse-form", help="Parse 'key: value' lines into JSON")
    form_parser.add_argument("text", nargs="?", default=None, help="Form text (default: stdin)")
    form_parser.set_defaults(func=cmd_parse_form)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="agentflow",
        description="agentflow - Inspect and validate agent flow graphs",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: from config)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)

    config = RuntimeConfig()
    configure_logging(level=args.log_level or config.log_level, format=config.log_format)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
