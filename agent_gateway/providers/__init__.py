"""
External tool providers.

Each provider is a subprocess reached through an MCP client session over
stdio. The registry owns the processes and mirrors their tools into the Tool Registry.
"""

from .process import ProviderProcess, ProviderToolCapability
from .registry import ProviderRegistry
from .config_loader import ProviderSpec, load_provider_specs, bootstrap_providers

__all__ = [
    "ProviderProcess",
    "ProviderToolCapability",
    "ProviderRegistry",
    "ProviderSpec",
    "load_provider_specs",
    "bootstrap_providers",
]
