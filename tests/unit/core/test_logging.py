"""Unit tests for the loguru logging setup."""

import json
import logging
from collections.abc import Generator
from typing import Any

import pytest
from loguru import logger
from pytest_mock import MockerFixture

from starterkit.core import logging as logging_module
from starterkit.core.config import Settings
from starterkit.core.logging import (
    InterceptHandler,
    format_console_with_context,
    serialize_for_json,
    setup_logging,
    shutdown_logging,
    uvicorn_log_config,
)


@pytest.fixture
def unconfigured() -> Generator[None]:
    """Let setup_logging run as if for the first time."""
    original = logging_module._state.configured
    logging_module._state.configured = False
    yield
    logging_module._state.configured = original


def _capture(log_records: list[dict[str, Any]], **fields: Any) -> dict[str, Any]:
    logger.bind(**fields).info("Request completed")
    return log_records[-1]


@pytest.mark.unit
class TestFormatters:
    """Console and JSON formatters."""

    def test_console_shows_priority_fields_first(
        self, log_records: list[dict[str, Any]]
    ) -> None:
        """Correlation id, method and status come before other fields."""
        record = _capture(
            log_records,
            zeta="last",
            status_code=200,
            method="GET",
            correlation_id="0123456789abcdef",
        )

        context = format_console_with_context(record).split(" | ")[3]

        assert context.index("01234567") < context.index("GET")
        assert context.index("GET") < context.index("200") < context.index("zeta=last")
        assert "0123456789abcdef" not in context

    def test_console_redacts_sensitive_fields(
        self, log_records: list[dict[str, Any]]
    ) -> None:
        """Sensitive extra fields never reach the console."""
        record = _capture(log_records, password="hunter2")

        line = format_console_with_context(record)

        assert "hunter2" not in line
        assert "password=[REDACTED]" in line

    def test_console_escapes_braces(self, log_records: list[dict[str, Any]]) -> None:
        """Values containing braces do not break loguru formatting."""
        record = _capture(log_records, payload="{x}")

        assert "payload={{x}}" in format_console_with_context(record)

    def test_json_line(self, log_records: list[dict[str, Any]]) -> None:
        """JSON output is one object per line with extras flattened."""
        record = _capture(log_records, correlation_id="abc", bytes=12)

        entry = json.loads(serialize_for_json(record))

        assert entry["message"] == "Request completed"
        assert entry["level"] == "INFO"
        assert entry["correlation_id"] == "abc"
        assert entry["bytes"] == 12

    def test_json_exception(self, log_records: list[dict[str, Any]]) -> None:
        """Exceptions are summarized by type and value."""
        try:
            raise ValueError("bad")
        except ValueError:
            logger.exception("failed")

        entry = json.loads(serialize_for_json(log_records[-1]))

        assert entry["exception"] == {"type": "ValueError", "value": "bad"}


@pytest.mark.unit
class TestInterception:
    """Standard library logging is forwarded to loguru."""

    def test_intercept_handler_forwards(
        self, log_records: list[dict[str, Any]]
    ) -> None:
        """A stdlib record arrives in loguru with its level."""
        std_logger = logging.getLogger("starterkit.tests.intercept")
        std_logger.addHandler(InterceptHandler())
        std_logger.setLevel(logging.INFO)
        std_logger.propagate = False
        try:
            std_logger.warning("from stdlib %s", "logging")
        finally:
            std_logger.handlers.clear()

        assert log_records[-1]["message"] == "from stdlib logging"
        assert log_records[-1]["level"].name == "WARNING"

    def test_uvicorn_config_routes_to_intercept_handler(self) -> None:
        """uvicorn's loggers use InterceptHandler and do not propagate."""
        config = uvicorn_log_config()

        assert config["handlers"]["default"]["class"] == (
            "starterkit.core.logging.InterceptHandler"
        )
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            assert config["loggers"][name]["propagate"] is False


@pytest.mark.unit
@pytest.mark.usefixtures("unconfigured")
class TestSetupLogging:
    """Process-wide configuration."""

    def test_console_sink_in_development(self, mocker: MockerFixture) -> None:
        """Development uses the console formatter on stdout."""
        mock_logger = mocker.patch("starterkit.core.logging.logger")
        mock_basic_config = mocker.patch("starterkit.core.logging.logging.basicConfig")

        setup_logging(Settings(environment="development"))

        mock_logger.remove.assert_called_once()
        kwargs = mock_logger.add.call_args.kwargs
        assert kwargs["format"] is format_console_with_context
        assert kwargs["enqueue"] is True
        mock_basic_config.assert_called_once()

    def test_json_sink_elsewhere(self, mocker: MockerFixture) -> None:
        """Other environments write JSON lines."""
        mock_logger = mocker.patch("starterkit.core.logging.logger")
        mocker.patch("starterkit.core.logging.logging.basicConfig")

        setup_logging(Settings(environment="production"))

        sink = mock_logger.add.call_args.args[0]
        assert sink is logging_module._write_json

    def test_configures_once(self, mocker: MockerFixture) -> None:
        """Subsequent calls have no effect."""
        mock_logger = mocker.patch("starterkit.core.logging.logger")
        mocker.patch("starterkit.core.logging.logging.basicConfig")

        setup_logging(Settings())
        setup_logging(Settings())

        assert mock_logger.add.call_count == 1


@pytest.mark.unit
async def test_shutdown_logging_completes_queue(mocker: MockerFixture) -> None:
    """Shutdown waits for enqueued records."""
    mock_logger = mocker.patch("starterkit.core.logging.logger")
    mock_logger.complete = mocker.AsyncMock()

    await shutdown_logging()

    mock_logger.complete.assert_awaited_once()
