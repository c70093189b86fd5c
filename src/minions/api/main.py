"""FastAPI app entrypoint for minions."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from minions.config.settings import Settings, get_settings
from minions.execution.agent import AgentExecutor
from minions.orchestrator import Orchestrator, build_agent_executor, build_store
from minions.storage.base import Blackboard
from minions.storage.models import (
    ArtifactRecord,
    BlackboardEntry,
    RunRecord,
    TaskRecord,
    ToolDefinition,
    ToolRecord,
)


class CreateRunRequest(BaseModel):
    task: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class RunDetail(BaseModel):
    run: RunRecord
    tasks: list[TaskRecord]
    entries: list[BlackboardEntry]
    artifacts: list[ArtifactRecord]


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: Blackboard | None,
    agent_override: AgentExecutor | None,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or build_store(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "orchestrator"):
        app.state.orchestrator = Orchestrator(
            app.state.storage,
            agent_override or build_agent_executor(settings),
            settings=settings,
        )


def create_app(
    *,
    storage: Blackboard | None = None,
    settings_override: Settings | None = None,
    agent: AgentExecutor | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    def _init(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            agent_override=agent,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _init(app)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _init(app)

    def _get_storage(request: Request) -> Blackboard:
        if not hasattr(request.app.state, "storage"):
            _init(request.app)
        return request.app.state.storage

    def _get_orchestrator(request: Request) -> Orchestrator:
        if not hasattr(request.app.state, "orchestrator"):
            _init(request.app)
        return request.app.state.orchestrator

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools", response_model=list[ToolRecord])
    def list_tools(request: Request, category: str | None = None) -> list[ToolRecord]:
        return _get_storage(request).list_tools(category=category)

    @app.post("/tools", response_model=ToolRecord)
    def register_tool(payload: ToolDefinition, request: Request) -> ToolRecord:
        return _get_storage(request).register_tool(payload)

    @app.post("/runs", response_model=RunRecord)
    def create_run(payload: CreateRunRequest, request: Request) -> RunRecord:
        orchestrator = _get_orchestrator(request)
        record = orchestrator.store.create_run(payload.task, metadata=payload.metadata)
        try:
            return orchestrator.execute(record)
        except Exception as exc:
            raise HTTPException(
                status_code=500,
                detail={"message": "Run failed", "run_id": record.run_id, "error": str(exc)},
            ) from exc

    @app.get("/runs", response_model=list[RunRecord])
    def list_runs(request: Request, limit: int = 10) -> list[RunRecord]:
        if limit < 1:
            raise HTTPException(status_code=422, detail="limit must be positive")
        return _get_storage(request).list_runs(limit=limit)

    @app.get("/runs/{run_id}", response_model=RunDetail)
    def get_run(run_id: str, request: Request) -> RunDetail:
        store = _get_storage(request)
        record = store.get_run(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return RunDetail(
            run=record,
            tasks=store.list_tasks(run_id),
            entries=store.query_entries(run_id),
            artifacts=store.list_artifacts(run_id),
        )

    return app


app = create_app()
