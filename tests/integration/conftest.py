"""Shared fixtures for integration tests.

These tests run the lifecycle manager with a real uvicorn listener on an
ephemeral loopback port. The database is replaced by the in-memory user store
and the startup connectivity check is stubbed.
"""

import asyncio

import pytest
from fastapi import FastAPI
from pytest_mock import MockerFixture

from starterkit.api.main import create_app
from starterkit.core.config import Settings
from starterkit.users.router import get_user_store
from tests.fixtures.server import SlowRouteGate
from tests.fixtures.user_store import InMemoryUserStore, make_user_record


@pytest.fixture
def stub_database(mocker: MockerFixture) -> None:
    """Report the database as reachable at startup."""
    mocker.patch(
        "starterkit.api.main.check_database_connection",
        new_callable=mocker.AsyncMock,
        return_value=(True, None),
    )


@pytest.fixture
def slow_gate() -> SlowRouteGate:
    """Gate signalled by the ``/slow`` route."""
    return SlowRouteGate()


@pytest.fixture
def integration_app(
    test_settings: Settings, stub_database: None, slow_gate: SlowRouteGate
) -> FastAPI:
    """Full application with a seeded in-memory store and a ``/slow`` route."""
    store = InMemoryUserStore([make_user_record(i) for i in range(1, 4)])
    app = create_app(test_settings)
    app.dependency_overrides[get_user_store] = lambda: store

    @app.get("/slow")
    async def slow(seconds: float) -> dict[str, float]:
        slow_gate.entered.set()
        await asyncio.sleep(seconds)
        return {"slept": seconds}

    return app
