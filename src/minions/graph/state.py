"""Typed state contract for the run pipeline."""

from typing import Any, TypedDict


class RunState(TypedDict, total=False):
    run_id: str
    task: str
    available_tools: list[str]
    plan: dict[str, Any]
    role_ids: dict[str, str]
    result: dict[str, Any]


def initial_state(run_id: str, task: str) -> RunState:
    return {
        "run_id": run_id,
        "task": task,
        "available_tools": [],
        "plan": {},
        "role_ids": {},
        "result": {},
    }
