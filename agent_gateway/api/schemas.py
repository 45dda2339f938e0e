"""
Pydantic schemas for the gateway API.

Field names follow the JSON used by the web client (camelCase).
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Generic acknowledgement."""

    status: Literal["ok"] = "ok"


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str
    tools: int = Field(default=0, description="Number of registered tools")
    providers: int = Field(default=0, description="Number of running providers")


class ConfigUpdateRequest(BaseModel):
    """Request body for POST /api/config."""

    systemPrompt: str = Field(..., min_length=1, description="System prompt for new conversations")
    model: str = Field(..., min_length=1, description="Model name sent to the backend")
    endpoint: str = Field(
        ...,
        min_length=1,
        description="OpenAI-compatible base URL or full /chat/completions endpoint",
    )
    apiKey: Optional[str] = Field(
        default=None, description="New API key; omitted or empty keeps the current key"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "systemPrompt": "You are a helpful assistant.",
                "model": "gpt-4o",
                "endpoint": "https://api.openai.com/v1/chat/completions",
            }
        }
    }


class ConfigResponse(BaseModel):
    """Current runtime settings. The API key itself is never returned."""

    systemPrompt: str
    model: str
    endpoint: str
    hasApiKey: bool


class SendMessageRequest(BaseModel):
    """Request body for POST /api/messages."""

    message: str = Field(..., min_length=1, description="User message text")


class SendMessageResponse(BaseModel):
    """Outcome of one orchestration run."""

    status: Literal["ok"] = "ok"
    state: str
    answer: str
    turns: int
    turnLimitReached: bool = False
    toolsUsed: list[str] = Field(default_factory=list)


class ToolCreateRequest(BaseModel):
    """Request body for POST /api/tools."""

    name: str = Field(..., min_length=1, description="Unique tool name")
    description: str = Field(..., min_length=1, description="What the tool does")
    code: str = Field(..., min_length=1, description="Python function body")
    parameters: dict = Field(
        ..., description="Object schema whose properties become the function parameters"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "add",
                "description": "Add two numbers",
                "code": "return a + b",
                "parameters": {
                    "type": "object",
                    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                    "required": ["a", "b"],
                },
            }
        }
    }


class ProviderCreateRequest(BaseModel):
    """Request body for POST /api/mcp-servers."""

    name: str = Field(..., min_length=1, description="Unique provider name")
    command: str = Field(..., min_length=1, description="Executable to launch")
    args: list[str] = Field(..., description="Command-line arguments")
    env: Optional[dict[str, str]] = Field(
        default=None, description="Extra environment variables for the process"
    )


class NameRequest(BaseModel):
    """Request body for DELETE endpoints addressing an entry by name."""

    name: str = Field(..., min_length=1)
