"""
MCP SDK adapters for tool provider processes.

The wire protocol itself (framing, the initialize handshake, request
correlation, server pings) is handled by the ``mcp`` client session; this
module only builds its launch parameters and flattens tool results into the
text the gateway hands back to the model.
"""

import json
import os
from typing import Optional

from mcp import StdioServerParameters
from mcp.types import CallToolResult, Implementation, TextContent

from .. import __version__

CLIENT_INFO = Implementation(name="agent-gateway", version=__version__)


def stdio_parameters(
    command: str, args: list[str], env: Optional[dict[str, str]] = None
) -> StdioServerParameters:
    """
    Launch parameters for a provider.

    The provider inherits the gateway's environment plus ``env``. Bytes on
    stdout that are not valid UTF-8 are replaced rather than failing the
    reader, so one bad line cannot take the connection down.
    """
    return StdioServerParameters(
        command=command,
        args=list(args),
        env={**os.environ, **(env or {})},
        encoding="utf-8",
        encoding_error_handler="replace",
    )


def format_call_result(result: CallToolResult) -> tuple[bool, str]:
    """
    Flatten a ``tools/call`` result into (is_error, text).

    Text parts are joined with newlines; binary parts are summarised and
    anything else is rendered as JSON.
    """
    parts = []
    for item in result.content:
        if isinstance(item, TextContent):
            parts.append(item.text)
        elif isinstance(getattr(item, "data", None), str):
            parts.append(f"[{item.type} data: {len(item.data)} bytes]")
        else:
            parts.append(item.model_dump_json(exclude_none=True))
    if not parts and result.structuredContent is not None:
        parts.append(json.dumps(result.structuredContent, default=str))
    return bool(result.isError), "\n".join(parts)
