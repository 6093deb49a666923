"""Shared fixtures for unit tests."""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pytest_mock import MockerFixture

from starterkit.api.main import create_app
from starterkit.core.config import Settings
from starterkit.users.router import get_user_store
from tests.fixtures.user_store import InMemoryUserStore, make_user_record


@pytest.fixture
def user_store() -> InMemoryUserStore:
    """Store with three live users and one soft-deleted user."""
    return InMemoryUserStore(
        [
            make_user_record(1),
            make_user_record(2),
            make_user_record(3),
            make_user_record(4, deleted=True),
        ]
    )


@pytest.fixture
def app(
    test_settings: Settings, user_store: InMemoryUserStore, mocker: MockerFixture
) -> FastAPI:
    """Application wired to the in-memory store, database check stubbed."""
    mocker.patch(
        "starterkit.api.main.check_database_connection",
        new_callable=mocker.AsyncMock,
        return_value=(True, None),
    )
    application = create_app(test_settings)
    application.dependency_overrides[get_user_store] = lambda: user_store
    return application


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient]:
    """Test client running the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client
