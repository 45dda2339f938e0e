"""
Model backend interface for the agent gateway.

Talks to any OpenAI-compatible chat completions endpoint with native
function calling. Provider failures are normalised into BackendError so the
orchestration loop has one fatal error type to handle.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import openai
from openai import OpenAI

from .errors import BackendError
from .messages import Message, ToolCall

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_SUFFIX = "/chat/completions"


@dataclass
class ModelResponse:
    """One model turn: either a final answer or a batch of tool calls."""

    content: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Optional[dict] = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class ModelBackend(Protocol):
    """Anything that can run one chat turn."""

    def complete(self, messages: list[dict], tools: list[dict]) -> ModelResponse:
        ...


def message_to_openai(message: Message) -> dict:
    """Convert a log entry to the chat completions message format."""
    data: dict = {"role": message.role, "content": message.content}
    if message.role == "tool":
        data["tool_call_id"] = message.tool_call_id
        if message.name:
            data["name"] = message.name
    if message.tool_calls:
        data["content"] = message.content or None
        data["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    return data


def normalize_base_url(endpoint: str) -> str:
    """Accept either a base URL or a full ``.../chat/completions`` endpoint."""
    url = endpoint.rstrip("/")
    if url.endswith(CHAT_COMPLETIONS_SUFFIX):
        url = url[: -len(CHAT_COMPLETIONS_SUFFIX)]
    return url


class LLMClient:
    """OpenAI-compatible chat completions backend.

    Reads model, endpoint and API key from ``settings`` on every call so
    runtime configuration changes apply to the next turn.
    """

    def __init__(self, settings, temperature: float = 0.7, timeout: float = 120.0):
        self.settings = settings
        self.temperature = temperature
        self.timeout = timeout
        self._client: Optional[OpenAI] = None
        self._client_key: Optional[tuple[str, str]] = None

    def _get_client(self) -> OpenAI:
        base_url = normalize_base_url(self.settings.endpoint)
        api_key = self.settings.api_key or "not-needed"
        key = (base_url, api_key)
        if self._client is None or self._client_key != key:
            self.close()
            self._client = OpenAI(base_url=base_url, api_key=api_key, timeout=self.timeout)
            self._client_key = key
        return self._client

    def complete(self, messages: list[dict], tools: list[dict]) -> ModelResponse:
        """
        Run one chat completion.

        Args:
            messages: Chat messages in OpenAI format.
            tools: OpenAI function tool definitions (may be empty).

        Raises:
            BackendError: on authentication, rate limit, connection or
                malformed-response failures.
        """
        create_kwargs: dict = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tools:
            create_kwargs["tools"] = tools

        try:
            response = self._get_client().chat.completions.create(**create_kwargs)
        except openai.AuthenticationError as e:
            raise BackendError(f"Authentication failed: {e}", "authentication") from e
        except openai.RateLimitError as e:
            raise BackendError(f"Rate limited: {e}", "rate_limit") from e
        except openai.APIConnectionError as e:
            raise BackendError(f"Could not reach model backend: {e}", "connection") from e
        except openai.APIError as e:
            raise BackendError(f"Model backend error: {e}", "backend_error") from e

        return self._parse_response(response)

    @staticmethod
    def _parse_response(response) -> ModelResponse:
        choices = getattr(response, "choices", None)
        if not choices:
            raise BackendError("Malformed response: no choices returned", "malformed_response")
        message = choices[0].message
        if message is None:
            raise BackendError("Malformed response: choice has no message", "malformed_response")

        tool_calls = []
        for raw in message.tool_calls or []:
            function = getattr(raw, "function", None)
            if function is None:
                raise BackendError(
                    f"Malformed response: unsupported tool call type {getattr(raw, 'type', None)!r}",
                    "malformed_response",
                )
            arguments = function.arguments or "{}"
            try:
                parsed = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise BackendError(
                    f"Malformed response: arguments for '{function.name}' are not JSON: {e}",
                    "malformed_response",
                ) from e
            if not isinstance(parsed, dict):
                parsed = {}
            tool_calls.append(ToolCall(id=raw.id, name=function.name, arguments=parsed))

        usage = None
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return ModelResponse(content=message.content, tool_calls=tool_calls, usage=usage)

    def close(self) -> None:
        """Close the underlying OpenAI client."""
        if self._client is None:
            return
        try:
            self._client.close()
        except Exception as e:
            logger.debug("Error closing OpenAI client: %s", e)
        self._client = None
        self._client_key = None
