"""Storage models shared by API and persistence backends."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

RunStatus = Literal["pending", "planning", "running", "completed", "failed"]
TaskStatus = Literal["pending", "running", "completed", "failed"]

TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class RunRecord(BaseModel):
    """One end-to-end execution of a task description."""

    run_id: str
    task: str
    status: RunStatus = "pending"
    plan: dict[str, Any] | None = None
    result: Any = None
    started_at: datetime
    completed_at: datetime | None = None
    execution_time_ms: int | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskRecord(BaseModel):
    """One agent role inside a run."""

    task_id: str
    run_id: str
    role: str
    description: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    status: TaskStatus = "pending"
    result: Any = None
    confidence: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    execution_time_ms: int | None = None
    error: str | None = None
    # Reserved: the phase executor does not retry.
    retry_count: int = 0
    position: int = 0


class BlackboardEntry(BaseModel):
    """Versioned, tagged key/value record scoped to a run."""

    entry_id: str
    run_id: str
    key: str
    value: Any = None
    written_by: str
    tags: list[str] = Field(default_factory=list)
    entity_ids: list[str] = Field(default_factory=list)
    event_date: date | None = None
    created_at: datetime
    version: int = 1


class ArtifactRecord(BaseModel):
    """File or text output produced by an agent."""

    artifact_id: str
    run_id: str
    task_id: str | None = None
    name: str
    content_type: str
    content: str | None = None
    file_path: str | None = None
    created_at: datetime


class ToolRecord(BaseModel):
    """Registered capability with usage instructions handed to agents."""

    tool_id: str
    name: str
    description: str
    category: str
    usage: str
    install_command: str | None = None
    examples: list[Any] = Field(default_factory=list)
    enabled: bool = True
    created_at: datetime


class ToolDefinition(BaseModel):
    """Registration payload for a tool (no identity yet)."""

    name: str = Field(min_length=1)
    description: str
    category: str
    usage: str
    install_command: str | None = None
    examples: list[Any] = Field(default_factory=list)


DEFAULT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="web_search",
        description="Search the web using Brave Search API",
        category="web",
        usage=(
            "Use web_search to find information online. Pass a query string. "
            "Returns titles, URLs, and snippets."
        ),
    ),
    ToolDefinition(
        name="web_fetch",
        description="Fetch and extract content from a URL",
        category="web",
        usage="Use web_fetch to read a webpage. Pass a URL. Returns markdown content.",
    ),
    ToolDefinition(
        name="file_read",
        description="Read contents of a file",
        category="file",
        usage="Read any file on the filesystem. Supports text and code files.",
    ),
    ToolDefinition(
        name="file_write",
        description="Write content to a file",
        category="file",
        usage="Write or create files. Specify path and content.",
    ),
    ToolDefinition(
        name="shell_exec",
        description="Execute shell commands",
        category="system",
        usage=(
            "Run any shell command. Use for installing packages, running scripts, "
            "processing data."
        ),
    ),
    ToolDefinition(
        name="github_cli",
        description="Interact with GitHub via gh CLI",
        category="api",
        usage=(
            "Use gh CLI for issues, PRs, repos. Examples: gh issue list, gh pr create, gh api."
        ),
    ),
    ToolDefinition(
        name="postgres_query",
        description="Query PostgreSQL databases",
        category="database",
        usage="Run SQL queries against PostgreSQL. Use psql or a Python client.",
    ),
)


def is_ready(task: TaskRecord, tasks_by_id: Mapping[str, TaskRecord]) -> bool:
    """A task is ready when pending and every dependency names a completed task."""
    if task.status != "pending":
        return False
    for dependency_id in task.dependencies:
        dependency = tasks_by_id.get(dependency_id)
        if dependency is None or dependency.run_id != task.run_id:
            return False
        if dependency.status != "completed":
            return False
    return True


def tags_intersect(left: Iterable[str], right: Iterable[str]) -> bool:
    return not set(left).isdisjoint(right)
