"""Storage interface for runs, tasks, blackboard entries, artifacts, and tools."""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from minions.storage.models import (
    ArtifactRecord,
    BlackboardEntry,
    RunRecord,
    TaskRecord,
    ToolDefinition,
    ToolRecord,
)


class Blackboard(Protocol):
    def migrate(self) -> None: ...

    def create_run(self, task: str, *, metadata: dict[str, Any] | None = None) -> RunRecord: ...

    def update_run(self, run_id: str, **updates: Any) -> RunRecord: ...

    def get_run(self, run_id: str) -> RunRecord | None: ...

    def list_runs(self, *, limit: int = 10) -> list[RunRecord]: ...

    def create_task(
        self,
        *,
        run_id: str,
        role: str,
        description: str,
        inputs: dict[str, Any] | None = None,
        dependencies: list[str] | None = None,
        task_id: str | None = None,
        position: int = 0,
    ) -> TaskRecord: ...

    def update_task(self, task_id: str, **updates: Any) -> TaskRecord: ...

    def get_task(self, task_id: str) -> TaskRecord | None: ...

    def list_tasks(self, run_id: str) -> list[TaskRecord]: ...

    def list_pending_tasks(self, run_id: str) -> list[TaskRecord]: ...

    def list_ready_tasks(self, run_id: str) -> list[TaskRecord]: ...

    def write_entry(
        self,
        *,
        run_id: str,
        key: str,
        value: Any,
        written_by: str,
        tags: list[str] | None = None,
        entity_ids: list[str] | None = None,
        event_date: date | None = None,
    ) -> BlackboardEntry: ...

    def query_entries(
        self,
        run_id: str,
        *,
        tags: list[str] | None = None,
        written_by: str | None = None,
        entity_ids: list[str] | None = None,
        limit: int | None = None,
    ) -> list[BlackboardEntry]: ...

    def save_artifact(
        self,
        *,
        run_id: str,
        name: str,
        content_type: str,
        task_id: str | None = None,
        content: str | None = None,
        file_path: str | None = None,
    ) -> ArtifactRecord: ...

    def list_artifacts(self, run_id: str) -> list[ArtifactRecord]: ...

    def list_tools(self, *, category: str | None = None) -> list[ToolRecord]: ...

    def get_tools_by_names(self, names: list[str]) -> list[ToolRecord]: ...

    def register_tool(self, tool: ToolDefinition) -> ToolRecord: ...


RUN_UPDATE_FIELDS = frozenset(
    {"status", "plan", "result", "completed_at", "execution_time_ms", "error", "metadata"}
)
TASK_UPDATE_FIELDS = frozenset(
    {
        "status",
        "result",
        "confidence",
        "started_at",
        "completed_at",
        "execution_time_ms",
        "error",
        "retry_count",
        "inputs",
        "dependencies",
    }
)


def check_update_fields(updates: dict[str, Any], allowed: frozenset[str], kind: str) -> None:
    unknown = sorted(set(updates) - allowed)
    if unknown:
        raise ValueError(f"Unsupported {kind} update fields: {', '.join(unknown)}")
