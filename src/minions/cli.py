"""Command line entry point: ``minions run|tools|history|show``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from minions.config.settings import Settings, get_settings
from minions.errors import MinionsError
from minions.orchestrator import Orchestrator, build_agent_executor, build_store
from minions.planning.builder import render_plan
from minions.planning.models import ExecutionPlan
from minions.storage.base import Blackboard
from minions.storage.models import ToolDefinition


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="minions",
        description="Plan and run a team of agents against a shared blackboard.",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use an in-memory store when no database URL is configured.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Plan and execute a task.")
    run_parser.add_argument("task")
    run_parser.add_argument("--plan-only", action="store_true", help="Print the plan and exit.")

    tools_parser = subparsers.add_parser("tools", help="List or register tools.")
    tools_parser.add_argument("--category", default=None)
    tools_sub = tools_parser.add_subparsers(dest="tools_command")
    add_parser = tools_sub.add_parser("add", help="Register a tool from a JSON file.")
    add_parser.add_argument("file", type=Path)

    history_parser = subparsers.add_parser("history", help="List recent runs.")
    history_parser.add_argument("--limit", type=int, default=10)

    show_parser = subparsers.add_parser("show", help="Show one run in detail.")
    show_parser.add_argument("run_id")
    return parser.parse_args(argv)


def _cmd_run(args: argparse.Namespace, store: Blackboard, settings: Settings) -> int:
    orchestrator = Orchestrator(store, build_agent_executor(settings), settings=settings)
    if args.plan_only:
        tools = [tool.name for tool in store.list_tools()]
        plan = orchestrator.planner.build(args.task, tools)
        print(plan.strategy)
        print(render_plan(plan))
        return 0

    record = orchestrator.run(args.task)
    if record.plan:
        plan = ExecutionPlan.model_validate(record.plan)
        print(plan.strategy)
        print(render_plan(plan))
        print()
    print(f"Run {record.run_id} {record.status} in {record.execution_time_ms} ms")
    if isinstance(record.result, dict):
        print(record.result.get("summary", ""))
    return 0


def _cmd_tools(args: argparse.Namespace, store: Blackboard) -> int:
    if args.tools_command == "add":
        payload = json.loads(args.file.read_text(encoding="utf-8"))
        definitions = payload if isinstance(payload, list) else [payload]
        for raw in definitions:
            tool = store.register_tool(ToolDefinition.model_validate(raw))
            print(f"Registered {tool.name} ({tool.category})")
        return 0

    for tool in store.list_tools(category=args.category):
        print(f"{tool.name:<16} [{tool.category}] {tool.description}")
    return 0


def _cmd_history(args: argparse.Namespace, store: Blackboard) -> int:
    runs = store.list_runs(limit=args.limit)
    if not runs:
        print("No runs yet.")
        return 0
    for record in runs:
        started = record.started_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{record.run_id}  {record.status:<9} {started}  {record.task[:60]}")
    return 0


def _cmd_show(args: argparse.Namespace, store: Blackboard) -> int:
    record = store.get_run(args.run_id)
    if record is None:
        print(f"Run {args.run_id} not found", file=sys.stderr)
        return 1
    print(f"Run:    {record.run_id}")
    print(f"Task:   {record.task}")
    print(f"Status: {record.status}")
    if record.error:
        print(f"Error:  {record.error}")
    print()
    for task in store.list_tasks(record.run_id):
        confidence = "-" if task.confidence is None else f"{task.confidence:.2f}"
        line = f"  [{task.status:<9}] {task.role:<20} confidence={confidence}"
        if task.error:
            line += f" error={task.error}"
        print(line)
    if isinstance(record.result, dict) and record.result.get("summary"):
        print()
        print(record.result["summary"])
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        store = build_store(settings, allow_memory=args.memory)
        store.migrate()
        if args.command == "run":
            return _cmd_run(args, store, settings)
        if args.command == "tools":
            return _cmd_tools(args, store)
        if args.command == "history":
            return _cmd_history(args, store)
        return _cmd_show(args, store)
    except (MinionsError, RuntimeError, ValueError, ValidationError, OSError) as exc:
        print(f"Fatal: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
