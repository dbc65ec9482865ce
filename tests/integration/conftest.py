from __future__ import annotations

import os

import pytest


@pytest.fixture
def postgres_url() -> str:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and AGENT_PIPELINE_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("AGENT_PIPELINE_DATABASE_URL")
    if not database_url:
        pytest.skip("AGENT_PIPELINE_DATABASE_URL is required for integration tests.")
    return database_url
