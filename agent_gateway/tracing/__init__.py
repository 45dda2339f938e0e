"""
Langfuse tracing for orchestration runs, model turns and tool calls.
"""

from .client import (
    TracingClient,
    get_tracing_client,
    init_tracing_client,
    init_tracing_from_config,
    shutdown_tracing,
)
from .context import Observation, RequestTrace

__all__ = [
    "TracingClient",
    "get_tracing_client",
    "init_tracing_client",
    "init_tracing_from_config",
    "shutdown_tracing",
    "Observation",
    "RequestTrace",
]
