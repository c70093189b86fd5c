"""Final run summary built from task outcomes."""

from __future__ import annotations

import json
from typing import Any

from minions.storage.models import BlackboardEntry, TaskRecord


def synthesize(tasks: list[TaskRecord], entries: list[BlackboardEntry]) -> str:
    completed = [task for task in tasks if task.status == "completed"]
    failed = [task for task in tasks if task.status == "failed"]

    lines = ["## Results", "", f"**{len(completed)}/{len(tasks)}** agents completed successfully.", ""]
    for task in completed:
        lines += [f"### {task.role}", "", _render_result(task.result), ""]

    if failed:
        lines += ["### Failures", ""]
        lines += [f"- **{task.role}**: {task.error or 'unknown error'}" for task in failed]
        lines.append("")

    if entries:
        lines.append(f"_{len(entries)} blackboard entries recorded._")
    return "\n".join(lines).rstrip() + "\n"


def build_run_result(tasks: list[TaskRecord], entries: list[BlackboardEntry]) -> dict[str, Any]:
    return {
        "tasks": [task.model_dump(mode="json") for task in tasks],
        "entries": [entry.model_dump(mode="json") for entry in entries],
        "summary": synthesize(tasks, entries),
    }


def _render_result(result: Any) -> str:
    if result is None:
        return "_No output._"
    if isinstance(result, str):
        return result
    return "```json\n" + json.dumps(result, indent=2, default=str) + "\n```"
