"""
Append-only conversation history.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional

from .events import EventBus, LOG_CLEARED, MESSAGE_APPENDED

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_json(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class Message:
    """A single entry in the conversation log."""

    role: Role
    content: str
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_calls: tuple[ToolCall, ...] = ()

    def to_json(self) -> dict:
        """Observer-facing representation."""
        data: dict = {"role": self.role, "content": self.content}
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [call.to_json() for call in self.tool_calls]
        return data


class MessageLog:
    """Observable, append-only message history."""

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._messages: list[Message] = []

    def append(self, message: Message) -> Message:
        with self._bus.lock:
            self._messages.append(message)
            self._bus.publish(MESSAGE_APPENDED, message)
        return message

    def clear(self) -> None:
        """Drop every message and publish ``log-cleared``."""
        with self._bus.lock:
            self._messages.clear()
            logger.debug("Message log cleared")
            self._bus.publish(LOG_CLEARED)

    def snapshot(self) -> tuple[Message, ...]:
        with self._bus.lock:
            return tuple(self._messages)

    def to_json(self) -> list[dict]:
        return [message.to_json() for message in self.snapshot()]

    def __len__(self) -> int:
        return len(self._messages)
