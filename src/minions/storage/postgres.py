"""PostgreSQL-backed blackboard with automatic schema migration."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from typing import Any

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
)

logger = logging.getLogger(__name__)

JSON_RUN_FIELDS = frozenset({"plan", "result", "metadata"})
JSON_TASK_FIELDS = frozenset({"result", "inputs"})

SCHEMA_STATEMENTS: tuple[str, ...] = (
    "CREATE SCHEMA IF NOT EXISTS minions",
    """
    CREATE TABLE IF NOT EXISTS minions.runs (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        task TEXT NOT NULL,
        plan JSONB,
        status TEXT NOT NULL DEFAULT 'pending',
        result JSONB,
        started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        completed_at TIMESTAMPTZ,
        execution_time_ms INTEGER,
        error TEXT,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS minions.tasks (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        run_id UUID NOT NULL REFERENCES minions.runs(id) ON DELETE CASCADE,
        role TEXT NOT NULL,
        description TEXT NOT NULL,
        inputs JSONB NOT NULL DEFAULT '{}'::jsonb,
        dependencies UUID[] NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'pending',
        result JSONB,
        confidence REAL,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        execution_time_ms INTEGER,
        error TEXT,
        retry_count INTEGER NOT NULL DEFAULT 0,
        position INTEGER NOT NULL DEFAULT 0,
        UNIQUE (run_id, role)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS minions.entries (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        run_id UUID NOT NULL REFERENCES minions.runs(id) ON DELETE CASCADE,
        key TEXT NOT NULL,
        value JSONB NOT NULL,
        written_by TEXT NOT NULL,
        tags TEXT[] NOT NULL DEFAULT '{}',
        entity_ids TEXT[] NOT NULL DEFAULT '{}',
        event_date DATE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        version INTEGER NOT NULL DEFAULT 1,
        UNIQUE (run_id, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS minions.artifacts (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        run_id UUID NOT NULL REFERENCES minions.runs(id) ON DELETE CASCADE,
        task_id UUID REFERENCES minions.tasks(id),
        name TEXT NOT NULL,
        content_type TEXT NOT NULL,
        content TEXT,
        file_path TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS minions.tools (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name TEXT NOT NULL UNIQUE,
        description TEXT NOT NULL,
        category TEXT NOT NULL,
        usage TEXT NOT NULL,
        install_command TEXT,
        examples JSONB NOT NULL DEFAULT '[]'::jsonb,
        enabled BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_run_id ON minions.tasks(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON minions.tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_entries_run_id ON minions.entries(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_entries_tags ON minions.entries USING GIN(tags)",
    "CREATE INDEX IF NOT EXISTS idx_entries_entity_ids ON minions.entries USING GIN(entity_ids)",
    "CREATE INDEX IF NOT EXISTS idx_entries_written_by ON minions.entries(written_by)",
    "CREATE INDEX IF NOT EXISTS idx_artifacts_run_id ON minions.artifacts(run_id)",
    "CREATE INDEX IF NOT EXISTS idx_tools_category ON minions.tools(category)",
    "CREATE INDEX IF NOT EXISTS idx_runs_status ON minions.runs(status)",
    "CREATE INDEX IF NOT EXISTS idx_entries_event_date ON minions.entries(event_date)",
    "CREATE INDEX IF NOT EXISTS idx_tools_enabled ON minions.tools(enabled)",
    "CREATE INDEX IF NOT EXISTS idx_runs_started_at ON minions.runs(started_at DESC)",
)

# Databases created by the SQL migrations lack the task ordering column.
LEGACY_COLUMN_STATEMENTS: tuple[str, ...] = (
    "ALTER TABLE minions.tasks ADD COLUMN IF NOT EXISTS position INTEGER NOT NULL DEFAULT 0",
)


class PostgresBlackboard:
    """Persist runs, tasks, entries, artifacts, and tools in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("MINIONS_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._session() as conn:
            legacy = self._table_exists(conn, "tasks") and not self._has_column(
                conn, "tasks", "position"
            )
            for statement in SCHEMA_STATEMENTS:
                conn.execute(statement)
            for statement in LEGACY_COLUMN_STATEMENTS:
                conn.execute(statement)
            for definition in DEFAULT_TOOLS:
                conn.execute(
                    """
                    INSERT INTO minions.tools (id, name, description, category, usage)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (name) DO NOTHING
                    """,
                    (
                        uuid.uuid4(),
                        definition.name,
                        definition.description,
                        definition.category,
                        definition.usage,
                    ),
                )
        if legacy:
            logger.info("storage event=legacy_schema_upgraded backend=postgres")
        logger.info("storage event=migrated backend=postgres")

    # Runs

    def create_run(self, task: str, *, metadata: dict[str, Any] | None = None) -> RunRecord:
        with self._session() as conn:
            row = conn.execute(
                """
                INSERT INTO minions.runs (id, task, status, started_at, metadata)
                VALUES (%s, %s, 'pending', %s, %s)
                RETURNING *
                """,
                (uuid.uuid4(), task, datetime.now(tz=UTC), self._json_wrapper(metadata or {})),
            ).fetchone()
        return self._row_to_run(self._require_row(row, "run"))

    def update_run(self, run_id: str, **updates: Any) -> RunRecord:
        check_update_fields(updates, RUN_UPDATE_FIELDS, "run")
        if not updates:
            current = self.get_run(run_id)
            if current is None:
                raise KeyError(f"Run {run_id} does not exist")
            return current
        assignments, values = self._assignments(updates, JSON_RUN_FIELDS)
        with self._session() as conn:
            row = conn.execute(
                f"UPDATE minions.runs SET {assignments} WHERE id::text = %s RETURNING *",
                (*values, run_id),
            ).fetchone()
        if row is None:
            raise KeyError(f"Run {run_id} does not exist")
        return self._row_to_run(row)

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM minions.runs WHERE id::text = %s",
                (run_id,),
            ).fetchone()
        return self._row_to_run(row) if row is not None else None

    def list_runs(self, *, limit: int = 10) -> list[RunRecord]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM minions.runs ORDER BY started_at DESC LIMIT %s",
                (limit,),
            ).fetchall()
        return [self._row_to_run(row) for row in rows]

    # Tasks

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
        with self._session() as conn:
            row = conn.execute(
                """
                INSERT INTO minions.tasks (
                    id, run_id, role, description, inputs, dependencies, position
                )
                VALUES (%s, %s::uuid, %s, %s, %s, %s::uuid[], %s)
                RETURNING *
                """,
                (
                    task_id or uuid.uuid4(),
                    run_id,
                    role,
                    description,
                    self._json_wrapper(inputs or {}),
                    list(dependencies or []),
                    position,
                ),
            ).fetchone()
        return self._row_to_task(self._require_row(row, "task"))

    def update_task(self, task_id: str, **updates: Any) -> TaskRecord:
        check_update_fields(updates, TASK_UPDATE_FIELDS, "task")
        if not updates:
            current = self.get_task(task_id)
            if current is None:
                raise KeyError(f"Task {task_id} does not exist")
            return current
        assignments, values = self._assignments(
            updates, JSON_TASK_FIELDS, casts={"dependencies": "uuid[]"}
        )
        with self._session() as conn:
            row = conn.execute(
                f"UPDATE minions.tasks SET {assignments} WHERE id::text = %s RETURNING *",
                (*values, task_id),
            ).fetchone()
        if row is None:
            raise KeyError(f"Task {task_id} does not exist")
        return self._row_to_task(row)

    def get_task(self, task_id: str) -> TaskRecord | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM minions.tasks WHERE id::text = %s",
                (task_id,),
            ).fetchone()
        return self._row_to_task(row) if row is not None else None

    def list_tasks(self, run_id: str) -> list[TaskRecord]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM minions.tasks WHERE run_id::text = %s ORDER BY position",
                (run_id,),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_pending_tasks(self, run_id: str) -> list[TaskRecord]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM minions.tasks
                WHERE run_id::text = %s AND status = 'pending'
                ORDER BY position
                """,
                (run_id,),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_ready_tasks(self, run_id: str) -> list[TaskRecord]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT t.* FROM minions.tasks t
                WHERE t.run_id::text = %s AND t.status = 'pending'
                AND NOT EXISTS (
                    SELECT 1 FROM unnest(t.dependencies) AS dep(dep_id)
                    WHERE dep.dep_id NOT IN (
                        SELECT id FROM minions.tasks
                        WHERE run_id = t.run_id AND status = 'completed'
                    )
                )
                ORDER BY t.position
                """,
                (run_id,),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    # Entries

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
        with self._session() as conn:
            row = conn.execute(
                """
                INSERT INTO minions.entries (
                    id, run_id, key, value, written_by, tags, entity_ids, event_date
                )
                VALUES (%s, %s::uuid, %s, %s, %s, %s::text[], %s::text[], %s)
                ON CONFLICT (run_id, key) DO UPDATE SET
                    value = EXCLUDED.value,
                    written_by = EXCLUDED.written_by,
                    tags = EXCLUDED.tags,
                    entity_ids = EXCLUDED.entity_ids,
                    event_date = EXCLUDED.event_date,
                    version = minions.entries.version + 1,
                    created_at = NOW()
                RETURNING *
                """,
                (
                    uuid.uuid4(),
                    run_id,
                    key,
                    self._json_wrapper(value),
                    written_by,
                    list(tags or []),
                    list(entity_ids or []),
                    event_date,
                ),
            ).fetchone()
        return self._row_to_entry(self._require_row(row, "entry"))

    def query_entries(
        self,
        run_id: str,
        *,
        tags: list[str] | None = None,
        written_by: str | None = None,
        entity_ids: list[str] | None = None,
        limit: int | None = None,
    ) -> list[BlackboardEntry]:
        query = "SELECT * FROM minions.entries WHERE run_id::text = %s"
        params: list[Any] = [run_id]
        if tags:
            query += " AND tags && %s::text[]"
            params.append(list(tags))
        if written_by:
            query += " AND written_by = %s"
            params.append(written_by)
        if entity_ids:
            query += " AND entity_ids && %s::text[]"
            params.append(list(entity_ids))
        query += " ORDER BY created_at"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        with self._session() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    # Artifacts

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
        with self._session() as conn:
            row = conn.execute(
                """
                INSERT INTO minions.artifacts (
                    id, run_id, task_id, name, content_type, content, file_path
                )
                VALUES (%s, %s::uuid, %s::uuid, %s, %s, %s, %s)
                RETURNING *
                """,
                (uuid.uuid4(), run_id, task_id, name, content_type, content, file_path),
            ).fetchone()
        return self._row_to_artifact(self._require_row(row, "artifact"))

    def list_artifacts(self, run_id: str) -> list[ArtifactRecord]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM minions.artifacts WHERE run_id::text = %s ORDER BY created_at",
                (run_id,),
            ).fetchall()
        return [self._row_to_artifact(row) for row in rows]

    # Tools

    def list_tools(self, *, category: str | None = None) -> list[ToolRecord]:
        query = "SELECT * FROM minions.tools WHERE enabled = true"
        params: list[Any] = []
        if category:
            query += " AND category = %s"
            params.append(category)
        query += " ORDER BY name"
        with self._session() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_tool(row) for row in rows]

    def get_tools_by_names(self, names: list[str]) -> list[ToolRecord]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT * FROM minions.tools
                WHERE name = ANY(%s::text[]) AND enabled = true
                ORDER BY name
                """,
                (list(names),),
            ).fetchall()
        return [self._row_to_tool(row) for row in rows]

    def register_tool(self, tool: ToolDefinition) -> ToolRecord:
        with self._session() as conn:
            row = conn.execute(
                """
                INSERT INTO minions.tools (
                    id, name, description, category, usage, install_command, examples
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (name) DO UPDATE SET
                    description = EXCLUDED.description,
                    category = EXCLUDED.category,
                    usage = EXCLUDED.usage,
                    install_command = EXCLUDED.install_command,
                    examples = EXCLUDED.examples
                RETURNING *
                """,
                (
                    uuid.uuid4(),
                    tool.name,
                    tool.description,
                    tool.category,
                    tool.usage,
                    tool.install_command,
                    self._json_wrapper(tool.examples),
                ),
            ).fetchone()
        return self._row_to_tool(self._require_row(row, "tool"))

    # Helpers

    @contextmanager
    def _session(self) -> Iterator[Any]:
        try:
            with self._lock, self._connect() as conn:
                yield conn
                conn.commit()
        except self._psycopg.Error as exc:
            raise PersistenceError(f"PostgreSQL operation failed: {exc}") from exc

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _table_exists(conn: Any, table: str) -> bool:
        row = conn.execute(
            """
            SELECT EXISTS (
                SELECT 1
                FROM information_schema.tables
                WHERE table_schema = 'minions' AND table_name = %s
            ) AS present
            """,
            (table,),
        ).fetchone()
        return bool(row and row.get("present"))

    @staticmethod
    def _has_column(conn: Any, table: str, column: str) -> bool:
        row = conn.execute(
            """
            SELECT EXISTS (
                SELECT 1
                FROM information_schema.columns
                WHERE table_schema = 'minions'
                  AND table_name = %s
                  AND column_name = %s
            ) AS present
            """,
            (table, column),
        ).fetchone()
        return bool(row and row.get("present"))

    def _assignments(
        self,
        updates: dict[str, Any],
        json_fields: frozenset[str],
        *,
        casts: dict[str, str] | None = None,
    ) -> tuple[str, list[Any]]:
        casts = casts or {}
        parts: list[str] = []
        values: list[Any] = []
        for key, value in updates.items():
            cast = f"::{casts[key]}" if key in casts else ""
            parts.append(f"{key} = %s{cast}")
            if key in json_fields and value is not None:
                values.append(self._json_wrapper(value))
            else:
                values.append(value)
        return ", ".join(parts), values

    @staticmethod
    def _require_row(row: Any, kind: str) -> Any:
        if row is None:
            raise PersistenceError(f"Failed to persist {kind}")
        return row

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> Any:
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return raw
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime | None:
        if raw is None or isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_run(cls, row: Any) -> RunRecord:
        return RunRecord(
            run_id=str(row["id"]),
            task=row["task"],
            status=row["status"],
            plan=cls._parse_json(row["plan"]),
            result=cls._parse_json(row["result"]),
            started_at=cls._parse_datetime(row["started_at"]),
            completed_at=cls._parse_datetime(row["completed_at"]),
            execution_time_ms=row["execution_time_ms"],
            error=row["error"],
            metadata=cls._parse_json(row["metadata"]) or {},
        )

    @classmethod
    def _row_to_task(cls, row: Any) -> TaskRecord:
        return TaskRecord(
            task_id=str(row["id"]),
            run_id=str(row["run_id"]),
            role=row["role"],
            description=row["description"],
            inputs=cls._parse_json(row["inputs"]) or {},
            dependencies=[str(item) for item in row["dependencies"] or []],
            status=row["status"],
            result=cls._parse_json(row["result"]),
            confidence=row["confidence"],
            started_at=cls._parse_datetime(row["started_at"]),
            completed_at=cls._parse_datetime(row["completed_at"]),
            execution_time_ms=row["execution_time_ms"],
            error=row["error"],
            retry_count=int(row["retry_count"] or 0),
            position=int(row["position"] or 0),
        )

    @classmethod
    def _row_to_entry(cls, row: Any) -> BlackboardEntry:
        return BlackboardEntry(
            entry_id=str(row["id"]),
            run_id=str(row["run_id"]),
            key=row["key"],
            value=cls._parse_json(row["value"]),
            written_by=row["written_by"],
            tags=list(row["tags"] or []),
            entity_ids=list(row["entity_ids"] or []),
            event_date=row["event_date"],
            created_at=cls._parse_datetime(row["created_at"]),
            version=int(row["version"]),
        )

    @classmethod
    def _row_to_artifact(cls, row: Any) -> ArtifactRecord:
        return ArtifactRecord(
            artifact_id=str(row["id"]),
            run_id=str(row["run_id"]),
            task_id=str(row["task_id"]) if row["task_id"] is not None else None,
            name=row["name"],
            content_type=row["content_type"],
            content=row["content"],
            file_path=row["file_path"],
            created_at=cls._parse_datetime(row["created_at"]),
        )

    @classmethod
    def _row_to_tool(cls, row: Any) -> ToolRecord:
        examples = cls._parse_json(row["examples"])
        return ToolRecord(
            tool_id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            category=row["category"],
            usage=row["usage"],
            install_command=row["install_command"],
            examples=examples if isinstance(examples, list) else [],
            enabled=bool(row["enabled"]),
            created_at=cls._parse_datetime(row["created_at"]),
        )
