import pytest

from minions.errors import PlanningError
from minions.planning.builder import PlanBuilder
from minions.planning.materialize import TaskGraphMaterializer
from minions.planning.models import ExecutionPlan, Phase, PlannedTask
from minions.storage.memory import InMemoryBlackboard

from tests.conftest import ALL_TOOLS


def _plan(*phases: Phase) -> ExecutionPlan:
    return ExecutionPlan(phases=list(phases))


def _phase(*tasks: PlannedTask, parallel: bool = False) -> Phase:
    return Phase(name="phase", description="", tasks=list(tasks), parallel=parallel)


def _task(role: str, *dependencies: str) -> PlannedTask:
    return PlannedTask(role=role, description=f"do {role}", dependencies=list(dependencies))


def test_materialize_persists_pending_tasks_with_resolved_ids(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    plan = _plan(_phase(_task("a")), _phase(_task("b", "a", "a")))

    role_ids = TaskGraphMaterializer(store).materialize(run.run_id, plan)

    tasks = store.list_tasks(run.run_id)
    assert [task.role for task in tasks] == ["a", "b"]
    assert all(task.status == "pending" for task in tasks)
    assert tasks[1].dependencies == [role_ids["a"]]
    assert tasks[1].task_id == role_ids["b"]


def test_materialize_builder_plan_keeps_dependency_counts(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    plan = PlanBuilder().build(
        "Build an enterprise platform with a secure api and a postgres database", ALL_TOOLS
    )

    role_ids = TaskGraphMaterializer(store).materialize(run.run_id, plan)

    by_role = {task.role: task for task in store.list_tasks(run.run_id)}
    for planned in plan.all_tasks():
        stored = by_role[planned.role]
        assert len(stored.dependencies) == len(set(planned.dependencies))
        assert set(stored.dependencies) <= set(role_ids.values())


def test_sequential_phase_may_depend_on_earlier_sibling(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    plan = _plan(_phase(_task("a"), _task("b", "a")))

    role_ids = TaskGraphMaterializer(store).materialize(run.run_id, plan)

    assert store.get_task(role_ids["b"]).dependencies == [role_ids["a"]]


@pytest.mark.parametrize(
    ("plan", "message"),
    [
        (_plan(_phase(_task("a")), _phase(_task("a"))), "Duplicate role"),
        (_plan(_phase(_task("a", "ghost"))), "unknown role"),
        (_plan(_phase(_task("a", "a"))), "itself"),
        (_plan(_phase(_task("a", "b")), _phase(_task("b"))), "later task"),
        (_plan(_phase(_task("a", "b"), _task("b"))), "later task"),
        (_plan(_phase(_task("a"), _task("b", "a"), parallel=True)), "parallel"),
    ],
)
def test_invalid_plans_are_rejected_without_writes(
    store: InMemoryBlackboard, plan: ExecutionPlan, message: str
) -> None:
    run = store.create_run("task")

    with pytest.raises(PlanningError, match=message):
        TaskGraphMaterializer(store).materialize(run.run_id, plan)

    assert store.list_tasks(run.run_id) == []
