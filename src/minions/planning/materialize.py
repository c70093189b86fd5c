"""Turn an execution plan into persisted task rows."""

from __future__ import annotations

import logging
from uuid import uuid4

from minions.errors import PlanningError
from minions.planning.models import ExecutionPlan
from minions.storage.base import Blackboard

logger = logging.getLogger(__name__)


class TaskGraphMaterializer:
    def __init__(self, store: Blackboard) -> None:
        self.store = store

    def materialize(self, run_id: str, plan: ExecutionPlan) -> dict[str, str]:
        """Validate the plan graph, persist one pending task per role, return role -> task id.

        Nothing is written unless every dependency resolves to an earlier task
        outside the dependent's own parallel phase.
        """
        role_ids: dict[str, str] = {}
        locations: dict[str, tuple[int, int]] = {}
        for phase_index, phase in enumerate(plan.phases):
            for task_index, task in enumerate(phase.tasks):
                if task.role in role_ids:
                    raise PlanningError(f"Duplicate role in plan: {task.role}")
                role_ids[task.role] = str(uuid4())
                locations[task.role] = (phase_index, task_index)

        resolved: dict[str, list[str]] = {}
        for phase_index, phase in enumerate(plan.phases):
            for task_index, task in enumerate(phase.tasks):
                ids: list[str] = []
                for dependency in dict.fromkeys(task.dependencies):
                    if dependency == task.role:
                        raise PlanningError(f"Task {task.role} depends on itself")
                    location = locations.get(dependency)
                    if location is None:
                        raise PlanningError(
                            f"Task {task.role} depends on unknown role {dependency}"
                        )
                    if location >= (phase_index, task_index):
                        raise PlanningError(
                            f"Task {task.role} depends on later task {dependency}"
                        )
                    if phase.parallel and location[0] == phase_index:
                        raise PlanningError(
                            f"Task {task.role} depends on {dependency} inside parallel "
                            f"phase {phase.name!r}"
                        )
                    ids.append(role_ids[dependency])
                resolved[task.role] = ids

        position = 0
        for phase in plan.phases:
            for task in phase.tasks:
                self.store.create_task(
                    run_id=run_id,
                    role=task.role,
                    description=task.description,
                    inputs=dict(task.inputs),
                    dependencies=resolved[task.role],
                    task_id=role_ids[task.role],
                    position=position,
                )
                position += 1
        logger.info("plan event=materialized run_id=%s tasks=%d", run_id, position)
        return role_ids
