"""
Pytest configuration and fixtures for agent gateway tests.
"""

import sys
from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from agent_gateway.config import get_config
from agent_gateway.context import GatewayContext
from agent_gateway.events import EventBus
from agent_gateway.messages import MessageLog
from agent_gateway.providers.process import ProviderProcess
from agent_gateway.tools.registry import ToolRegistry

FIXTURES = Path(__file__).parent / "fixtures"
ECHO_PROVIDER = str(FIXTURES / "echo_provider.py")


class Recorder:
    """Event listener that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def message_log(bus):
    return MessageLog(bus)


@pytest.fixture
def tool_registry(bus):
    return ToolRegistry(bus)


@pytest.fixture
def mock_backend():
    """Scripted model backend; set ``side_effect`` to a list of responses."""
    backend = MagicMock()
    backend.settings.model = "test-model"
    return backend


@pytest.fixture
def test_config(tmp_path):
    """Environment config with fast timeouts and no providers file."""
    config = get_config()
    return replace(
        config,
        model=replace(config.model, max_turns=5, system_prompt_path="", api_key="sk-test"),
        tools=replace(config.tools, sandbox="inprocess", tool_creator_enabled=False),
        providers=replace(
            config.providers,
            handshake_timeout=10.0,
            request_timeout=10.0,
            shutdown_grace=2.0,
            config_path="",
        ),
    )


@pytest.fixture
def gateway(test_config, mock_backend):
    context = GatewayContext(test_config, backend=mock_backend)
    yield context
    context.close()


def make_provider(name: str, *args: str, request_timeout: float = 10.0) -> ProviderProcess:
    """A provider manager running the echo fixture."""
    return ProviderProcess(
        name,
        sys.executable,
        [ECHO_PROVIDER, *args],
        handshake_timeout=10.0,
        request_timeout=request_timeout,
        shutdown_grace=2.0,
    )


@pytest.fixture
def provider_factory():
    """Create echo providers and shut them all down after the test."""
    created = []

    def factory(name: str, *args: str, **kwargs) -> ProviderProcess:
        provider = make_provider(name, *args, **kwargs)
        created.append(provider)
        return provider

    yield factory
    for provider in created:
        provider.shutdown()
