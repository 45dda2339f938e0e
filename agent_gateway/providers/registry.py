"""
Provider Registry.

Owns the running provider processes and mirrors their tools into the Tool
Registry. Removing a provider (explicitly, at shutdown, or because its
process died) removes exactly the tools still tagged with its origin.
"""

import logging
from typing import Optional

from ..errors import ProviderExistsError, ProviderUnavailableError
from ..events import EventBus, PROVIDER_ADDED, PROVIDER_REMOVED
from ..tools.registry import ToolRegistry
from .process import ProviderProcess

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Observable set of provider processes keyed by name."""

    def __init__(self, bus: EventBus, tools: ToolRegistry):
        self._bus = bus
        self._tool_registry = tools
        self._providers: dict[str, ProviderProcess] = {}

    def add(self, provider: ProviderProcess) -> ProviderProcess:
        """
        Register a bootstrapped provider and its tools.

        Raises:
            ProviderExistsError: a provider with this name is registered.
            ProviderUnavailableError: the process already died.
        """
        with self._bus.lock:
            if provider.name in self._providers:
                raise ProviderExistsError(provider.name)
            provider.set_exit_callback(self._reap)
            if not provider.alive:
                raise ProviderUnavailableError(provider.name, "process is not running")

            self._providers[provider.name] = provider
            for tool in provider.tools:
                self._tool_registry.add(tool)
            logger.info(
                "Registered provider '%s' with %d tools", provider.name, len(provider.tools)
            )
            self._bus.publish(PROVIDER_ADDED, provider)
        return provider

    def remove_by_name(self, name: str) -> Optional[ProviderProcess]:
        """Shut a provider down and drop its tools. Unknown names are a no-op."""
        with self._bus.lock:
            provider = self._providers.pop(name, None)
            if provider is None:
                return None
            provider.set_exit_callback(None)
            removed = self._tool_registry.remove_by_origin(provider.origin)

        # Stopping can take up to the grace period; keep the bus free meanwhile.
        provider.shutdown()
        logger.info("Removed provider '%s' and %d tools", name, len(removed))
        self._bus.publish(PROVIDER_REMOVED, provider)
        return provider

    def shutdown_all(self) -> None:
        """Stop every registered provider. Used once at process termination."""
        names = list(self._providers)
        if names:
            logger.info("Shutting down %d providers", len(names))
        for name in names:
            self.remove_by_name(name)

    def get(self, name: str) -> Optional[ProviderProcess]:
        with self._bus.lock:
            return self._providers.get(name)

    def all_providers(self) -> list[ProviderProcess]:
        with self._bus.lock:
            return list(self._providers.values())

    def to_json(self) -> list[dict]:
        return [provider.to_json() for provider in self.all_providers()]

    def _reap(self, provider: ProviderProcess) -> None:
        with self._bus.lock:
            if self._providers.get(provider.name) is not provider:
                return
            logger.warning("Reaping dead provider '%s'", provider.name)
        self.remove_by_name(provider.name)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)
