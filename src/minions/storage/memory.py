"""In-memory blackboard backend for tests and offline runs."""

from __future__ import annotations

import copy
import itertools
import threading
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from minions.errors import PersistenceError
from minions.storage.base import RUN_UPDATE_FIELDS, TASK_UPDATE_FIELDS, check_update_fields
from minions.storage.models import (
    DEFAULT_TOOLS,
    ArtifactRecord,
    BlackboardEntry,
    RunRecord,
    TaskRecord,
    ToolDefinition,
    ToolRecord,
    is_ready,
    tags_intersect,
)


class InMemoryBlackboard:
    """Thread-safe implementation with the same upsert semantics as PostgreSQL."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, RunRecord] = {}
        self._tasks: dict[str, TaskRecord] = {}
        self._entries: dict[tuple[str, str], BlackboardEntry] = {}
        self._entry_order: dict[tuple[str, str], int] = {}
        self._artifacts: list[ArtifactRecord] = []
        self._tools: dict[str, ToolRecord] = {}
        self._sequence = itertools.count(1)

    def migrate(self) -> None:
        with self._lock:
            for definition in DEFAULT_TOOLS:
                if definition.name not in self._tools:
                    self._tools[definition.name] = _new_tool(definition)

    def create_run(self, task: str, *, metadata: dict[str, Any] | None = None) -> RunRecord:
        record = RunRecord(
            run_id=str(uuid4()),
            task=task,
            status="pending",
            started_at=datetime.now(UTC),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._runs[record.run_id] = record
        return record.model_copy(deep=True)

    def update_run(self, run_id: str, **updates: Any) -> RunRecord:
        check_update_fields(updates, RUN_UPDATE_FIELDS, "run")
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise KeyError(f"Run {run_id} does not exist")
            updated = current.model_copy(update=updates, deep=True)
            self._runs[run_id] = RunRecord.model_validate(updated.model_dump())
            return self._runs[run_id].model_copy(deep=True)

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._lock:
            record = self._runs.get(run_id)
            return record.model_copy(deep=True) if record else None

    def list_runs(self, *, limit: int = 10) -> list[RunRecord]:
        with self._lock:
            runs = sorted(self._runs.values(), key=lambda item: item.started_at, reverse=True)
            return [item.model_copy(deep=True) for item in runs[:limit]]

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
    ) -> TaskRecord:
        record = TaskRecord(
            task_id=task_id or str(uuid4()),
            run_id=run_id,
            role=role,
            description=description,
            inputs=dict(inputs or {}),
            dependencies=list(dependencies or []),
            position=position,
        )
        with self._lock:
            if run_id not in self._runs:
                raise PersistenceError(f"Run {run_id} does not exist")
            if record.task_id in self._tasks:
                raise PersistenceError(f"Task {record.task_id} already exists")
            for existing in self._tasks.values():
                if existing.run_id == run_id and existing.role == role:
                    raise PersistenceError(f"Role '{role}' already exists in run {run_id}")
            self._tasks[record.task_id] = record
        return record.model_copy(deep=True)

    def update_task(self, task_id: str, **updates: Any) -> TaskRecord:
        check_update_fields(updates, TASK_UPDATE_FIELDS, "task")
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise KeyError(f"Task {task_id} does not exist")
            updated = current.model_copy(update=updates, deep=True)
            self._tasks[task_id] = TaskRecord.model_validate(updated.model_dump())
            return self._tasks[task_id].model_copy(deep=True)

    def get_task(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            record = self._tasks.get(task_id)
            return record.model_copy(deep=True) if record else None

    def list_tasks(self, run_id: str) -> list[TaskRecord]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._run_tasks(run_id)]

    def list_pending_tasks(self, run_id: str) -> list[TaskRecord]:
        return [item for item in self.list_tasks(run_id) if item.status == "pending"]

    def list_ready_tasks(self, run_id: str) -> list[TaskRecord]:
        with self._lock:
            run_tasks = self._run_tasks(run_id)
            by_id = {item.task_id: item for item in run_tasks}
            return [item.model_copy(deep=True) for item in run_tasks if is_ready(item, by_id)]

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
    ) -> BlackboardEntry:
        natural_key = (run_id, key)
        with self._lock:
            if run_id not in self._runs:
                raise PersistenceError(f"Run {run_id} does not exist")
            current = self._entries.get(natural_key)
            now = datetime.now(UTC)
            value = copy.deepcopy(value)
            if current is None:
                entry = BlackboardEntry(
                    entry_id=str(uuid4()),
                    run_id=run_id,
                    key=key,
                    value=value,
                    written_by=written_by,
                    tags=list(tags or []),
                    entity_ids=list(entity_ids or []),
                    event_date=event_date,
                    created_at=now,
                    version=1,
                )
            else:
                entry = current.model_copy(
                    update={
                        "value": value,
                        "written_by": written_by,
                        "tags": list(tags or []),
                        "entity_ids": list(entity_ids or []),
                        "event_date": event_date,
                        "created_at": max(now, current.created_at),
                        "version": current.version + 1,
                    }
                )
            self._entries[natural_key] = entry
            self._entry_order[natural_key] = next(self._sequence)
            return entry.model_copy(deep=True)

    def query_entries(
        self,
        run_id: str,
        *,
        tags: list[str] | None = None,
        written_by: str | None = None,
        entity_ids: list[str] | None = None,
        limit: int | None = None,
    ) -> list[BlackboardEntry]:
        with self._lock:
            matches: list[tuple[datetime, int, BlackboardEntry]] = []
            for natural_key, entry in self._entries.items():
                if entry.run_id != run_id:
                    continue
                if tags and not tags_intersect(entry.tags, tags):
                    continue
                if written_by and entry.written_by != written_by:
                    continue
                if entity_ids and not tags_intersect(entry.entity_ids, entity_ids):
                    continue
                matches.append((entry.created_at, self._entry_order[natural_key], entry))
            matches.sort(key=lambda item: (item[0], item[1]))
            ordered = [item[2].model_copy(deep=True) for item in matches]
        if limit is not None:
            return ordered[:limit]
        return ordered

    def save_artifact(
        self,
        *,
        run_id: str,
        name: str,
        content_type: str,
        task_id: str | None = None,
        content: str | None = None,
        file_path: str | None = None,
    ) -> ArtifactRecord:
        record = ArtifactRecord(
            artifact_id=str(uuid4()),
            run_id=run_id,
            task_id=task_id,
            name=name,
            content_type=content_type,
            content=content,
            file_path=file_path,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            if run_id not in self._runs:
                raise PersistenceError(f"Run {run_id} does not exist")
            self._artifacts.append(record)
        return record.model_copy(deep=True)

    def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._artifacts if item.run_id == run_id]

    def list_tools(self, *, category: str | None = None) -> list[ToolRecord]:
        with self._lock:
            tools = [
                item
                for item in self._tools.values()
                if item.enabled and (category is None or item.category == category)
            ]
            return [item.model_copy(deep=True) for item in sorted(tools, key=lambda t: t.name)]

    def get_tools_by_names(self, names: list[str]) -> list[ToolRecord]:
        wanted = set(names)
        return [item for item in self.list_tools() if item.name in wanted]

    def register_tool(self, tool: ToolDefinition) -> ToolRecord:
        with self._lock:
            current = self._tools.get(tool.name)
            if current is None:
                record = _new_tool(tool)
            else:
                record = current.model_copy(update=tool.model_dump())
            self._tools[tool.name] = record
            return record.model_copy(deep=True)

    def _run_tasks(self, run_id: str) -> list[TaskRecord]:
        return sorted(
            (item for item in self._tasks.values() if item.run_id == run_id),
            key=lambda item: item.position,
        )


def _new_tool(definition: ToolDefinition) -> ToolRecord:
    return ToolRecord(
        tool_id=str(uuid4()),
        created_at=datetime.now(UTC),
        enabled=True,
        **definition.model_dump(),
    )
