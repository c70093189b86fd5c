"""Plan building and task graph materialization."""

from minions.planning.builder import PlanBuilder, render_plan
from minions.planning.materialize import TaskGraphMaterializer
from minions.planning.models import ExecutionPlan, Phase, PlannedTask, TaskAnalysis
from minions.planning.triggers import PlannerConfig, default_planner_config

__all__ = [
    "ExecutionPlan",
    "Phase",
    "PlanBuilder",
    "PlannedTask",
    "PlannerConfig",
    "TaskAnalysis",
    "TaskGraphMaterializer",
    "default_planner_config",
    "render_plan",
]
