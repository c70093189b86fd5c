"""Execution plan models produced by the plan builder and consumed by the executor.

Plans are stored on the run record as JSON documents. Extra fields are allowed on
every model so a document written by a newer producer survives a round-trip.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Scope = Literal["small", "medium", "large", "enterprise"]
RiskLevel = Literal["low", "medium", "high"]


class OpenModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class PlannedTask(OpenModel):
    """One role in a plan. Dependencies are role names until materialized."""

    role: str = Field(min_length=1)
    description: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    context_tags: list[str] = Field(default_factory=list)


class Phase(OpenModel):
    name: str
    description: str
    tasks: list[PlannedTask] = Field(default_factory=list)
    parallel: bool = False


class TaskAnalysis(OpenModel):
    """Deterministic classification of the task text."""

    domains: list[str] = Field(default_factory=list)
    scope: Scope = "small"
    risk: RiskLevel = "low"
    intents: list[str] = Field(default_factory=list)


class ExecutionPlan(OpenModel):
    phases: list[Phase] = Field(default_factory=list)
    estimated_agents: int = 0
    strategy: str = ""
    analysis: TaskAnalysis | None = None

    def all_tasks(self) -> list[PlannedTask]:
        return [task for phase in self.phases for task in phase.tasks]

    def roles(self) -> list[str]:
        return [task.role for task in self.all_tasks()]
