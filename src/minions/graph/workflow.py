"""LangGraph pipeline for one run: plan, materialize, execute, synthesize."""

from __future__ import annotations

from datetime import UTC, datetime

from langgraph.graph import END, StateGraph

from minions.errors import PlanningError
from minions.execution.phases import PhaseExecutor
from minions.execution.synthesis import build_run_result
from minions.graph.state import RunState
from minions.planning.builder import PlanBuilder
from minions.planning.materialize import TaskGraphMaterializer
from minions.planning.models import ExecutionPlan
from minions.storage.base import Blackboard


def build_graph(
    *,
    store: Blackboard,
    planner: PlanBuilder,
    materializer: TaskGraphMaterializer,
    executor: PhaseExecutor,
):
    def plan(state: RunState) -> RunState:
        run_id = state["run_id"]
        store.update_run(run_id, status="planning")
        available = [tool.name for tool in store.list_tools()]
        try:
            execution_plan = planner.build(state["task"], available)
        except PlanningError:
            raise
        except Exception as exc:
            raise PlanningError(f"Planning failed: {exc}") from exc
        plan_document = execution_plan.model_dump(mode="json")
        store.update_run(run_id, plan=plan_document, status="running")
        return {"available_tools": available, "plan": plan_document}

    def materialize(state: RunState) -> RunState:
        execution_plan = ExecutionPlan.model_validate(state["plan"])
        return {"role_ids": materializer.materialize(state["run_id"], execution_plan)}

    def execute(state: RunState) -> RunState:
        execution_plan = ExecutionPlan.model_validate(state["plan"])
        executor.execute(state["run_id"], execution_plan, state["role_ids"])
        return {"role_ids": state["role_ids"]}

    def synthesize(state: RunState) -> RunState:
        run_id = state["run_id"]
        tasks = store.list_tasks(run_id)
        entries = store.query_entries(run_id)
        result = build_run_result(tasks, entries)
        run = store.get_run(run_id)
        completed_at = datetime.now(UTC)
        elapsed_ms = None
        if run is not None:
            elapsed_ms = int((completed_at - run.started_at).total_seconds() * 1000)
        store.update_run(
            run_id,
            status="completed",
            result=result,
            completed_at=completed_at,
            execution_time_ms=elapsed_ms,
        )
        return {"result": result}

    graph = StateGraph(RunState)

    graph.add_node("build_plan", plan)
    graph.add_node("materialize_tasks", materialize)
    graph.add_node("execute_phases", execute)
    graph.add_node("synthesize_result", synthesize)

    graph.set_entry_point("build_plan")
    graph.add_edge("build_plan", "materialize_tasks")
    graph.add_edge("materialize_tasks", "execute_phases")
    graph.add_edge("execute_phases", "synthesize_result")
    graph.add_edge("synthesize_result", END)

    return graph.compile()
