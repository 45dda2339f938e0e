"""
Tests for the provider registry.

Tests cover tool mirroring, cascading removal, name collisions, reaping of
crashed providers and shutdown of every provider exactly once.
"""

import time
from unittest.mock import patch

import pytest

from agent_gateway.errors import ProviderExistsError, ProviderUnavailableError
from agent_gateway.events import PROVIDER_ADDED, PROVIDER_REMOVED, TOOL_ADDED, TOOL_REMOVED
from agent_gateway.providers.registry import ProviderRegistry
from agent_gateway.tools.registry import Tool


@pytest.fixture
def providers(bus, tool_registry):
    registry = ProviderRegistry(bus, tool_registry)
    yield registry
    registry.shutdown_all()


def started(factory, name, *args):
    provider = factory(name, "--prefix", name, *args)
    provider.bootstrap()
    return provider


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


class TestAdd:
    """Tests for ProviderRegistry.add."""

    def test_registers_tools(self, bus, providers, tool_registry, provider_factory, recorder):
        bus.subscribe(recorder)
        provider = started(provider_factory, "alpha")

        providers.add(provider)

        assert "alpha" in providers
        assert providers.get("alpha") is provider
        assert len(tool_registry) == len(provider.tools)
        assert recorder.types[-1] == PROVIDER_ADDED
        assert recorder.types.count(TOOL_ADDED) == len(provider.tools)

    def test_duplicate_name_rejected(self, providers, tool_registry, provider_factory):
        """A second provider with the same name is not merged."""
        providers.add(started(provider_factory, "alpha"))
        before = tool_registry.to_json()

        with pytest.raises(ProviderExistsError):
            providers.add(started(provider_factory, "alpha"))

        assert len(providers) == 1
        assert tool_registry.to_json() == before

    def test_dead_provider_rejected(self, providers, provider_factory):
        provider = started(provider_factory, "alpha")
        provider.shutdown()

        with pytest.raises(ProviderUnavailableError):
            providers.add(provider)
        assert "alpha" not in providers

    def test_registered_tools_are_invocable(self, providers, tool_registry, provider_factory):
        providers.add(started(provider_factory, "alpha"))
        assert tool_registry.invoke("alpha_add", {"a": 2, "b": 3}) == "5"


class TestRemove:
    """Tests for removal and cascading tool removal."""

    def test_removes_exactly_its_tools(
        self, bus, providers, tool_registry, provider_factory, recorder
    ):
        """Two providers plus local tools: removing one leaves the rest intact."""
        tool_registry.add(Tool(name="local_tool", description="Local", capability=lambda a: 1))
        alpha = started(provider_factory, "alpha")
        beta = started(provider_factory, "beta")
        providers.add(alpha)
        providers.add(beta)
        bus.subscribe(recorder)

        removed = providers.remove_by_name("alpha")

        assert removed is alpha
        assert not alpha.alive
        names = {tool.name for tool in tool_registry.all_tools()}
        assert names == {"local_tool", *beta.tool_names}
        assert recorder.types.count(TOOL_REMOVED) == len(alpha.tools)
        assert recorder.types[-1] == PROVIDER_REMOVED
        assert beta.alive

    def test_remove_unknown_is_noop(self, bus, providers, recorder):
        bus.subscribe(recorder)
        assert providers.remove_by_name("missing") is None
        assert recorder.events == []

    def test_reaps_crashed_provider(self, providers, tool_registry, provider_factory):
        """A provider that dies is removed along with its tools."""
        alpha = started(provider_factory, "alpha")
        beta = started(provider_factory, "beta")
        providers.add(alpha)
        providers.add(beta)

        result = tool_registry.invoke("alpha_crash", {})

        assert result["success"] is False
        assert wait_for(lambda: "alpha" not in providers)
        assert not any(tool.origin == "provider:alpha" for tool in tool_registry.all_tools())
        assert "beta" in providers


class TestShutdownAll:
    """Tests for process-termination teardown."""

    def test_each_provider_shut_down_once(self, providers, provider_factory):
        alpha = started(provider_factory, "alpha")
        beta = started(provider_factory, "beta")
        providers.add(alpha)
        providers.add(beta)

        with patch.object(alpha, "shutdown", wraps=alpha.shutdown) as alpha_spy, \
                patch.object(beta, "shutdown", wraps=beta.shutdown) as beta_spy:
            providers.shutdown_all()
            providers.shutdown_all()

        assert alpha_spy.call_count == 1
        assert beta_spy.call_count == 1
        assert len(providers) == 0
        # A second shutdown on the manager itself does not raise
        alpha.shutdown()

    def test_to_json(self, providers, provider_factory):
        providers.add(started(provider_factory, "alpha"))
        data = providers.to_json()
        assert [entry["name"] for entry in data] == ["alpha"]
        assert "alpha_echo" in data[0]["tools"]
