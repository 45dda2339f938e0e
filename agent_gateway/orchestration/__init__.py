"""
Multi-turn tool-calling orchestration.
"""

from .tool_defs import build_tool_definitions, format_tool_result
from .loop import (
    LoopState,
    OrchestrationLoop,
    OrchestrationResult,
    OrchestrationStep,
)

__all__ = [
    "build_tool_definitions",
    "format_tool_result",
    "LoopState",
    "OrchestrationLoop",
    "OrchestrationResult",
    "OrchestrationStep",
]
