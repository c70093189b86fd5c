"""Error taxonomy for run orchestration.

Run-level errors (planning, persistence) stop a run and propagate to the caller.
Task-level errors are recorded on the task and never stop sibling or later tasks.
"""

from __future__ import annotations


class MinionsError(Exception):
    """Base class for orchestration errors."""


class PlanningError(MinionsError):
    """The plan cannot be turned into a valid acyclic task graph."""


class PersistenceError(MinionsError):
    """The blackboard store is unreachable or rejected a write."""


class TaskExecutionError(MinionsError):
    """One task failed: failure result, raised error, or timeout."""

    def __init__(self, role: str, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.role = role
        self.timed_out = timed_out
