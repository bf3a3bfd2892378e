"""
Data models for conversation turns and the outbound request body.
These define the shape of data flowing between the history store,
the codec and the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    DEVELOPER = "developer"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""
    role: Role
    content: str = ""

    def to_input_item(self) -> dict:
        """Export as one entry of the request's `input` array."""
        return {"role": self.role.value, "content": self.content}


def total_characters(messages: Iterable[Message]) -> int:
    return sum(len(m.content) for m in messages)


@dataclass(frozen=True)
class ResponsesRequest:
    """Body of a POST to the responses endpoint."""
    model: str
    instructions: str | None
    input: list[Message] = field(default_factory=list)
    stream: bool = False
    temperature: float = 0.5

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "instructions": self.instructions,
            "input": [m.to_input_item() for m in self.input],
            "stream": self.stream,
            "temperature": self.temperature,
        }
