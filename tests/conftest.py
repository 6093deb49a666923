"""Root conftest.py for the starterkit test suite.

This file contains project-wide fixtures and pytest configuration.
"""

import os
from collections.abc import Generator
from typing import Any

import pytest
from loguru import logger

from starterkit.core.config import Settings, get_settings
from starterkit.core.error_context import _get_sensitive_fields

ENV_PREFIXES = (
    "APP_",
    "API_",
    "ENVIRONMENT",
    "DEBUG",
    "PORT",
    "SERVER_CONFIG__",
    "LOG_CONFIG__",
    "OBSERVABILITY_CONFIG__",
    "DATABASE_CONFIG__",
)


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear cached settings before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove app-specific environment variables for the duration of a test.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: tracing off, ephemeral port, short timeouts."""
    return Settings(
        app_name="starterkit-test",
        app_version="9.9.9",
        api_host="127.0.0.1",
        api_port=0,
        observability_config={"enable_tracing": False, "exporter_type": "none"},
        server_config={"shutdown_timeout": 2.0, "hook_timeout": 1.0},
    )


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test.

    Yields:
        list[dict[str, Any]]: Loguru record dicts in emission order.
    """
    records: list[dict[str, Any]] = []
    handler_id = logger.add(
        lambda message: records.append(message.record),
        level="DEBUG",
        format="{message}",
    )
    yield records
    logger.remove(handler_id)
