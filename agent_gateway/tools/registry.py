"""
Tool Registry - the gateway's catalog of callable tools.

Tools come from two places: local tools compiled from source text and
proxies for tools discovered on provider processes. Each carries an origin
tag so provider removal can cascade to exactly the tools it contributed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..errors import UnknownToolError
from ..events import EventBus, TOOL_ADDED, TOOL_REMOVED

logger = logging.getLogger(__name__)

LOCAL_ORIGIN = "local"


def provider_origin(provider_name: str) -> str:
    """Origin tag for tools contributed by a provider."""
    return f"provider:{provider_name}"


def empty_schema() -> dict:
    return {"type": "object", "properties": {}, "required": []}


@dataclass
class Tool:
    """A named, schema-described capability."""

    name: str
    description: str
    capability: Callable[[dict], Any] = field(repr=False, compare=False)
    parameters: dict = field(default_factory=empty_schema)
    origin: str = LOCAL_ORIGIN

    def to_spec(self) -> dict:
        """Model-facing tool spec."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_json(self) -> dict:
        """Observer-facing record."""
        return {**self.to_spec(), "origin": self.origin}


class ToolRegistry:
    """Observable registry of tools keyed by name."""

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._tools: dict[str, Tool] = {}

    def add(self, tool: Tool) -> Tool:
        """Insert a tool, replacing any tool with the same name."""
        with self._bus.lock:
            replaced = tool.name in self._tools
            self._tools[tool.name] = tool
            logger.debug(
                "%s tool '%s' (origin=%s)",
                "Replaced" if replaced else "Added",
                tool.name,
                tool.origin,
            )
            self._bus.publish(TOOL_ADDED, tool)
        return tool

    def remove_by_name(self, name: str) -> Optional[Tool]:
        """Remove a tool by name. Absent names are a silent no-op."""
        with self._bus.lock:
            tool = self._tools.pop(name, None)
            if tool is None:
                return None
            logger.debug("Removed tool '%s'", name)
            self._bus.publish(TOOL_REMOVED, tool)
        return tool

    def remove_by_origin(self, origin: str) -> list[Tool]:
        """Remove every tool tagged with ``origin``."""
        with self._bus.lock:
            names = [name for name, tool in self._tools.items() if tool.origin == origin]
            return [tool for tool in map(self.remove_by_name, names) if tool]

    def get(self, name: str) -> Optional[Tool]:
        with self._bus.lock:
            return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        with self._bus.lock:
            return list(self._tools.values())

    def specs(self) -> list[dict]:
        return [tool.to_spec() for tool in self.all_tools()]

    def to_json(self) -> list[dict]:
        return [tool.to_json() for tool in self.all_tools()]

    def invoke(self, name: str, args: dict) -> Any:
        """Call a tool's capability with named arguments.

        Raises:
            UnknownToolError: if no tool is registered under ``name``.
        """
        tool = self.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool.capability(args or {})

    def get_tools_summary(self) -> str:
        """Formatted one-line-per-tool summary."""
        return "\n".join(f"- {tool.name}: {tool.description}" for tool in self.all_tools())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
