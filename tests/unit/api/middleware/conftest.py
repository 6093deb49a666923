"""Fixtures for API middleware tests."""

import pytest

from tests.fixtures.asgi import SendRecorder


@pytest.fixture
def send() -> SendRecorder:
    """Fresh recording send callable."""
    return SendRecorder()
