"""
Command-line interface for nodeflow.

Usage:
    nodeflow validate graph.json
    nodeflow resolve graph.json --node node_1 --port node_1_out_sum_2
    nodeflow dispatch graph.json --event attack --payload '{"hp": 12}'
    nodeflow dispatch graph.json --event attack --breakpoint node_4

Graph files hold the JSON form of `nodeflow.graph.model.Graph`. Results are
printed as JSON; the exit code is 0 on success and 1 on any error.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from nodeflow.config import EngineConfig
from nodeflow.graph.engine import GraphEngine
from nodeflow.graph.model import Graph
from nodeflow.observability import configure_logging
from nodeflow.runtime.run_state import RunStatus


def load_graph(path: str) -> Graph:
    """Read and parse a graph file. Raises OSError or pydantic.ValidationError."""
    return Graph.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _load_or_report(path: str) -> Graph | None:
    try:
        return load_graph(path)
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
    except ValidationError as e:
        print(f"Error: {path} is not a valid graph:\n{e}", file=sys.stderr)
    return None


def cmd_validate(args: argparse.Namespace) -> int:
    graph = _load_or_report(args.graph)
    if graph is None:
        return 1

    errors = graph.validate()
    if errors:
        print(f"✗ {len(errors)} problem(s) in {args.graph}:")
        for error in errors:
            print(f"  - {error}")
        return 1

    print(f"✓ {args.graph}: {len(graph.nodes)} node(s), {len(graph.connections)} connection(s)")
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    graph = _load_or_report(args.graph)
    if graph is None:
        return 1

    engine = GraphEngine(config=args.config)
    result = asyncio.run(
        engine.resolve_output_for_node(args.node, args.port, graph.nodes, graph.connections)
    )
    output = {"value": result.requested_value, **result.final_run_state.to_dict()}
    _print_json(output)
    return 0 if result.success else 1


def cmd_dispatch(args: argparse.Namespace) -> int:
    graph = _load_or_report(args.graph)
    if graph is None:
        return 1

    try:
        payload = json.loads(args.payload) if args.payload is not None else None
    except json.JSONDecodeError as e:
        print(f"Error: --payload is not valid JSON: {e}", file=sys.stderr)
        return 1

    engine = GraphEngine(config=args.config)
    state = asyncio.run(
        engine.dispatch_event(
            args.event,
            payload,
            graph.nodes,
            graph.connections,
            breakpoints=set(args.breakpoint or ()),
        )
    )
    _print_json(state.to_dict())
    return 1 if state.status == RunStatus.ERROR else 0


def register_commands(subparsers) -> None:
    validate_parser = subparsers.add_parser("validate", help="Check a graph file for structural errors")
    validate_parser.add_argument("graph", help="Path to a graph JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve one DATA output (pull)")
    resolve_parser.add_argument("graph", help="Path to a graph JSON file")
    resolve_parser.add_argument("--node", required=True, help="Id of the node owning the output")
    resolve_parser.add_argument("--port", required=True, help="Id of the output port")
    resolve_parser.set_defaults(func=cmd_resolve)

    dispatch_parser = subparsers.add_parser("dispatch", help="Dispatch a named event (push)")
    dispatch_parser.add_argument("graph", help="Path to a graph JSON file")
    dispatch_parser.add_argument("--event", required=True, help="Event name to dispatch")
    dispatch_parser.add_argument("--payload", help="Event payload as JSON")
    dispatch_parser.add_argument(
        "--breakpoint",
        action="append",
        metavar="NODE_ID",
        help="Pause before this node (repeatable)",
    )
    dispatch_parser.set_defaults(func=cmd_dispatch)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="nodeflow",
        description="nodeflow - Resolve and dispatch visual node graphs",
    )
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument(
        "--log-format",
        choices=["auto", "json", "human"],
        help="Override the configured log format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)

    args.config = EngineConfig()
    configure_logging(
        level=args.log_level or args.config.log_level,
        format=args.log_format or args.config.log_format,
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
