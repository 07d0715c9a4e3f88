"""Shared fixtures for dispatcher tests."""

from collections.abc import Generator

import pytest

from netdispatch.request import DispatchMetrics, set_default_dispatcher
from netdispatch.settings import DispatchSettings
from tests.helpers.mock_server import BASE_URL, ScriptedServer


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None]:
    """Reset metrics and the default dispatcher around each test."""
    DispatchMetrics.reset()
    set_default_dispatcher(None)
    yield
    DispatchMetrics.reset()
    set_default_dispatcher(None)


@pytest.fixture
def settings() -> DispatchSettings:
    """Settings pointing relative URLs at the scripted server."""
    return DispatchSettings(base_url=BASE_URL, _env_file=None)


@pytest.fixture
def server() -> ScriptedServer:
    """Create an empty scripted server."""
    return ScriptedServer()
