"""Phase-by-phase task execution with a barrier between phases."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import ValidationError

from minions.errors import PersistenceError, TaskExecutionError
from minions.execution.agent import AgentExecutor, AgentRequest, AgentResult
from minions.execution.context import ContextAssembler
from minions.planning.models import ExecutionPlan, Phase, PlannedTask
from minions.storage.base import Blackboard
from minions.storage.models import TaskRecord, ToolRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_AGENT_TIMEOUT_S = 300.0


class PhaseExecutor:
    """Runs plan phases in order against a materialized task graph.

    Task failures (reported failure, raised error, timeout) are recorded on the
    task and never stop the run. A ``PersistenceError`` is fatal: tasks already
    running in the same parallel phase finish first, then the error propagates
    and no later phase starts.
    """

    def __init__(
        self,
        store: Blackboard,
        agent: AgentExecutor,
        *,
        timeout_s: float = DEFAULT_AGENT_TIMEOUT_S,
        context: ContextAssembler | None = None,
        max_parallel_tasks: int = 0,
    ) -> None:
        self.store = store
        self.agent = agent
        self.timeout_s = timeout_s
        self.context = context or ContextAssembler(store)
        self.max_parallel_tasks = max(0, max_parallel_tasks)

    def execute(self, run_id: str, plan: ExecutionPlan, role_ids: dict[str, str]) -> list[TaskRecord]:
        tools = {tool.name: tool for tool in self._store(self.store.list_tools)}
        for index, phase in enumerate(plan.phases, start=1):
            started = time.perf_counter()
            logger.info(
                "phase event=start run_id=%s phase=%d tasks=%d parallel=%s",
                run_id,
                index,
                len(phase.tasks),
                phase.parallel,
            )
            if phase.parallel and len(phase.tasks) > 1:
                self._run_parallel(run_id, phase, role_ids, tools)
            else:
                for planned in phase.tasks:
                    self._run_task(run_id, planned, role_ids[planned.role], tools)
            logger.info(
                "phase event=completed run_id=%s phase=%d duration_ms=%d",
                run_id,
                index,
                _duration_ms(started),
            )
        return self._store(self.store.list_tasks, run_id)

    def _run_parallel(
        self,
        run_id: str,
        phase: Phase,
        role_ids: dict[str, str],
        tools: dict[str, ToolRecord],
    ) -> None:
        workers = len(phase.tasks)
        if self.max_parallel_tasks:
            workers = min(workers, self.max_parallel_tasks)
        failures: list[PersistenceError] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="minions-task") as pool:
            futures = [
                pool.submit(self._run_task, run_id, planned, role_ids[planned.role], tools)
                for planned in phase.tasks
            ]
            for future in futures:
                try:
                    future.result()
                except PersistenceError as exc:
                    failures.append(exc)
        if failures:
            raise failures[0]

    def _run_task(
        self,
        run_id: str,
        planned: PlannedTask,
        task_id: str,
        tools: dict[str, ToolRecord],
    ) -> None:
        started = time.perf_counter()
        self._store(
            self.store.update_task, task_id, status="running", started_at=datetime.now(UTC)
        )
        logger.info("task event=start run_id=%s role=%s task_id=%s", run_id, planned.role, task_id)
        try:
            self._complete_task(run_id, planned, task_id, tools, started)
        except PersistenceError as exc:
            self._record_store_failure(run_id, planned.role, task_id, started, exc)
            raise

    def _complete_task(
        self,
        run_id: str,
        planned: PlannedTask,
        task_id: str,
        tools: dict[str, ToolRecord],
        started: float,
    ) -> None:
        context = self._store(self.context.assemble, run_id, planned.context_tags)
        request = AgentRequest(
            role=planned.role,
            description=planned.description,
            inputs=planned.inputs,
            context=context,
            tools=[tools[name] for name in planned.tools if name in tools],
        )
        try:
            result = self._invoke(request)
        except TaskExecutionError as exc:
            if exc.timed_out:
                logger.warning(
                    "task event=timeout run_id=%s role=%s timeout_s=%g",
                    run_id,
                    exc.role,
                    self.timeout_s,
                )
            result = AgentResult(success=False, confidence=0.0, error=str(exc))

        for entry in result.entries:
            self._store(
                self.store.write_entry,
                run_id=run_id,
                key=f"{planned.role}:{entry.key}",
                value=entry.value,
                written_by=planned.role,
                tags=entry.tags,
                entity_ids=entry.entity_ids,
                event_date=entry.event_date,
            )
        for artifact in result.artifacts:
            self._store(
                self.store.save_artifact,
                run_id=run_id,
                task_id=task_id,
                name=artifact.name,
                content_type=artifact.content_type,
                content=artifact.content,
            )

        error = None if result.success else (result.error or "Agent reported failure")
        duration_ms = _duration_ms(started)
        self._store(
            self.store.update_task,
            task_id,
            status="completed" if result.success else "failed",
            result=result.data,
            confidence=result.confidence,
            completed_at=datetime.now(UTC),
            execution_time_ms=duration_ms,
            error=error,
        )
        if result.success:
            logger.info(
                "task event=completed run_id=%s role=%s confidence=%.2f duration_ms=%d",
                run_id,
                planned.role,
                result.confidence,
                duration_ms,
            )
        else:
            logger.warning(
                "task event=failed run_id=%s role=%s duration_ms=%d error=%s",
                run_id,
                planned.role,
                duration_ms,
                error,
            )

    def _record_store_failure(
        self, run_id: str, role: str, task_id: str, started: float, exc: PersistenceError
    ) -> None:
        """One best-effort attempt to close the task; the original error still propagates."""
        try:
            self.store.update_task(
                task_id,
                status="failed",
                confidence=0.0,
                completed_at=datetime.now(UTC),
                execution_time_ms=_duration_ms(started),
                error=str(exc),
            )
        except Exception:  # noqa: BLE001
            logger.exception("task event=close_failed run_id=%s role=%s", run_id, role)
        logger.error("task event=store_error run_id=%s role=%s error=%s", run_id, role, exc)

    def _invoke(self, request: AgentRequest) -> AgentResult:
        # The worker is abandoned on timeout, never joined.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="minions-agent")
        future = pool.submit(self.agent.execute, request, timeout_s=self.timeout_s)
        try:
            raw = future.result(timeout=self.timeout_s)
        except TimeoutError as exc:
            raise TaskExecutionError(
                request.role, f"Agent timed out after {self.timeout_s:g}s", timed_out=True
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise TaskExecutionError(request.role, f"Agent error: {exc}") from exc
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        if isinstance(raw, AgentResult):
            return raw
        try:
            return AgentResult.model_validate(raw)
        except ValidationError as exc:
            raise TaskExecutionError(request.role, f"Invalid agent result: {exc}") from exc

    @staticmethod
    def _store(call: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return call(*args, **kwargs)
        except PersistenceError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Blackboard operation failed: {exc}") from exc


def _duration_ms(started_at: float) -> int:
    return int(round((time.perf_counter() - started_at) * 1000.0))
