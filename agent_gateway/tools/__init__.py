"""
Tool catalog and local tool compilation.

- registry: observable catalog of named tools with origin tags
- capabilities: in-process and sandboxed execution of compiled bodies
- compiler: source text -> registered local tool, plus the tool-creator tool
"""

from .registry import LOCAL_ORIGIN, Tool, ToolRegistry, provider_origin
from .capabilities import ExecutionCapability, InProcessCapability, SandboxedCapability
from .compiler import TOOL_CREATOR_NAME, ToolCompiler, normalize_schema

__all__ = [
    "LOCAL_ORIGIN",
    "Tool",
    "ToolRegistry",
    "provider_origin",
    "ExecutionCapability",
    "InProcessCapability",
    "SandboxedCapability",
    "TOOL_CREATOR_NAME",
    "ToolCompiler",
    "normalize_schema",
]
