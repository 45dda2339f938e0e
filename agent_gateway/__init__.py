"""
Agent Gateway - conversational agent gateway with a tool-orchestration core

This package provides:
- Observable message log, tool registry and provider registry
- Dynamic tool compiler (in-process or sandboxed execution)
- MCP-style stdio tool providers
- Multi-turn tool-calling orchestration loop
- FastAPI server with a WebSocket event channel
- Interactive CLI
"""

__version__ = "0.1.0"

from .context import GatewayContext, RuntimeSettings
from .llm_call import LLMClient
from .orchestration import OrchestrationLoop, OrchestrationResult

__all__ = [
    "GatewayContext",
    "RuntimeSettings",
    "LLMClient",
    "OrchestrationLoop",
    "OrchestrationResult",
]
