"""
Tool definitions and tool-result formatting for the orchestration loop.

Converts ToolRegistry entries into OpenAI function-calling definitions and
renders tool outputs as the string content of ``tool`` messages.
"""

import json
import logging
from typing import Any, Optional

from ..tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def build_tool_definitions(
    registry: ToolRegistry,
    exclude_tools: Optional[set[str]] = None,
) -> list[dict]:
    """
    Build OpenAI function-calling tool definitions from the registry.

    Args:
        registry: Source of the current tool catalog.
        exclude_tools: Tool names to leave out of this request.

    Returns:
        List of ``{"type": "function", "function": spec}`` definitions.
    """
    exclude = exclude_tools or set()
    tools: list[dict] = []
    for spec in registry.specs():
        if spec["name"] in exclude:
            logger.debug("Excluding tool '%s'", spec["name"])
            continue
        tools.append({"type": "function", "function": spec})
    return tools


def format_tool_result(result: Any) -> str:
    """
    Render a tool's output as message content.

    Strings pass through unchanged; None becomes an empty string; anything
    else (including structured failures) is JSON-encoded.
    """
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    try:
        return json.dumps(result, default=str)
    except (TypeError, ValueError):
        return str(result)


def is_failure(result: Any) -> bool:
    return isinstance(result, dict) and result.get("success") is False
