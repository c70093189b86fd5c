"""Blackboard storage backends and models."""

from minions.storage.base import Blackboard
from minions.storage.memory import InMemoryBlackboard
from minions.storage.models import (
    ArtifactRecord,
    BlackboardEntry,
    RunRecord,
    TaskRecord,
    ToolDefinition,
    ToolRecord,
    is_ready,
)
from minions.storage.postgres import PostgresBlackboard

__all__ = [
    "ArtifactRecord",
    "Blackboard",
    "BlackboardEntry",
    "InMemoryBlackboard",
    "PostgresBlackboard",
    "RunRecord",
    "TaskRecord",
    "ToolDefinition",
    "ToolRecord",
    "is_ready",
]
