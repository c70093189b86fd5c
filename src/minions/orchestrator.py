"""Run orchestration entry point shared by the API and the CLI."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from minions.config.settings import Settings, get_settings
from minions.execution.agent import AgentExecutor, AnthropicAgentExecutor, DeterministicAgentExecutor
from minions.execution.context import ContextAssembler
from minions.execution.phases import PhaseExecutor
from minions.graph.state import initial_state
from minions.graph.workflow import build_graph
from minions.planning.builder import PlanBuilder
from minions.planning.materialize import TaskGraphMaterializer
from minions.storage.base import Blackboard
from minions.storage.memory import InMemoryBlackboard
from minions.storage.models import RunRecord
from minions.storage.postgres import PostgresBlackboard

logger = logging.getLogger(__name__)


def build_agent_executor(settings: Settings) -> AgentExecutor:
    mode = settings.executor_mode.lower().strip()
    if mode == "deterministic":
        return DeterministicAgentExecutor()
    if mode == "llm":
        api_key = settings.resolved_anthropic_api_key()
        if not api_key:
            raise RuntimeError(
                "Missing API key. Set MINIONS_ANTHROPIC_API_KEY or ANTHROPIC_API_KEY "
                "to use executor_mode=llm."
            )
        return AnthropicAgentExecutor(
            api_key=api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            max_tokens=settings.llm_max_tokens,
            max_value_chars=settings.max_context_value_chars,
        )
    raise ValueError(f"Unsupported executor mode: {settings.executor_mode}")


def build_store(settings: Settings, *, allow_memory: bool = False) -> Blackboard:
    database_url = settings.resolved_database_url()
    if database_url:
        return PostgresBlackboard(database_url)
    if allow_memory:
        logger.warning("store event=fallback backend=memory reason=no_database_url")
        return InMemoryBlackboard()
    raise RuntimeError(
        "Missing database URL. Set MINIONS_DATABASE_URL or DATABASE_URL before starting."
    )


class Orchestrator:
    """Plans, materializes, executes, and summarizes one run per ``run`` call."""

    def __init__(
        self,
        store: Blackboard,
        agent: AgentExecutor,
        *,
        settings: Settings | None = None,
        planner: PlanBuilder | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.planner = planner or PlanBuilder()
        self.executor = PhaseExecutor(
            store,
            agent,
            timeout_s=self.settings.agent_timeout_s,
            context=ContextAssembler(store, max_entries=self.settings.max_context_entries),
            max_parallel_tasks=self.settings.max_parallel_tasks,
        )
        self.workflow = build_graph(
            store=store,
            planner=self.planner,
            materializer=TaskGraphMaterializer(store),
            executor=self.executor,
        )

    def run(self, task: str, *, metadata: dict[str, Any] | None = None) -> RunRecord:
        """Execute ``task`` end to end and return the final run record.

        Planning and persistence errors mark the run failed and are re-raised.
        Individual task failures do not fail the run.
        """
        return self.execute(self.store.create_run(task, metadata=metadata))

    def execute(self, record: RunRecord) -> RunRecord:
        run_id = record.run_id
        task = record.task
        logger.info("run event=start run_id=%s task=%r", run_id, task[:120])
        try:
            self.workflow.invoke(initial_state(run_id, task))
        except Exception as exc:
            logger.error("run event=failed run_id=%s error=%s", run_id, exc)
            self._mark_failed(record, exc)
            raise

        final = self.store.get_run(run_id)
        if final is None:
            raise RuntimeError(f"Run {run_id} disappeared from the store")
        logger.info(
            "run event=completed run_id=%s status=%s duration_ms=%s",
            run_id,
            final.status,
            final.execution_time_ms,
        )
        return final

    def _mark_failed(self, record: RunRecord, exc: Exception) -> None:
        completed_at = datetime.now(UTC)
        try:
            self.store.update_run(
                record.run_id,
                status="failed",
                error=str(exc),
                completed_at=completed_at,
                execution_time_ms=int((completed_at - record.started_at).total_seconds() * 1000),
            )
        except Exception:  # noqa: BLE001
            logger.exception("run event=mark_failed_error run_id=%s", record.run_id)
