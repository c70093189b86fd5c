from __future__ import annotations

import pytest

from minions.config.settings import Settings
from minions.storage.memory import InMemoryBlackboard
from minions.storage.models import DEFAULT_TOOLS

ALL_TOOLS = [tool.name for tool in DEFAULT_TOOLS]


@pytest.fixture
def store() -> InMemoryBlackboard:
    blackboard = InMemoryBlackboard()
    blackboard.migrate()
    return blackboard


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="",
        executor_mode="deterministic",
        agent_timeout_s=5.0,
    )
