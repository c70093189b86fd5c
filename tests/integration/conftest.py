from __future__ import annotations

import os

import pytest

from minions.storage.postgres import PostgresBlackboard


@pytest.fixture
def postgres_store() -> PostgresBlackboard:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and MINIONS_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("MINIONS_DATABASE_URL")
    if not database_url:
        pytest.skip("MINIONS_DATABASE_URL is required for integration tests.")

    store = PostgresBlackboard(database_url)
    store.migrate()
    return store
