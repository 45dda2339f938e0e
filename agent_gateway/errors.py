"""
Exception hierarchy for the agent gateway.

Errors that are scoped to a single tool call (ToolExecutionError,
UnknownToolError, ProviderUnavailableError) are converted into structured
failure values by the orchestration loop; the others propagate to the caller.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class ValidationError(GatewayError):
    """Malformed or missing input rejected at the boundary."""


class BootstrapError(GatewayError):
    """A provider process could not be spawned or did not complete its handshake."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"Provider '{provider}' failed to start: {message}")
        self.provider = provider


class ProviderExistsError(GatewayError):
    """A provider with the same name is already registered."""

    def __init__(self, provider: str):
        super().__init__(f"Provider '{provider}' is already registered")
        self.provider = provider


class ToolExecutionError(GatewayError):
    """A tool's execution capability failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class UnknownToolError(GatewayError):
    """The requested tool is not in the registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool '{tool_name}'")
        self.tool_name = tool_name


class ProviderUnavailableError(GatewayError):
    """The provider process is gone; the call cannot be completed."""

    def __init__(self, provider: str, reason: Optional[str] = None):
        message = f"Provider '{provider}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.provider = provider


class ProviderRequestError(GatewayError):
    """A provider answered a request with an error, or did not answer in time."""

    def __init__(self, provider: str, message: str, code: Optional[int] = None):
        super().__init__(f"Provider '{provider}' request failed: {message}")
        self.provider = provider
        self.code = code


class BackendError(GatewayError):
    """The model backend call failed (auth, rate limit, connection, bad response)."""

    def __init__(self, message: str, kind: str = "backend_error"):
        super().__init__(message)
        self.kind = kind


def failure_result(message: str, error_type: Optional[str] = None) -> dict:
    """Structured failure value returned as a tool's output."""
    result = {"success": False, "errorMessage": message}
    if error_type:
        result["errorType"] = error_type
    return result
