"""Text-completion request and response types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChatMessage:
    """One turn of an agent conversation.

    Attributes:
        role: "user" or "assistant".
        content: Message text.
    """

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to the provider message format."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Usage:
    """Token usage reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Return input plus output tokens."""
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Completion:
    """A text-completion response.

    Attributes:
        text: Concatenated text content of the response.
        usage: Token usage for the call.
        stop_reason: Provider stop reason (e.g. "end_turn", "max_tokens").
    """

    text: str
    usage: Usage = Usage()
    stop_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "text": self.text,
            "usage": {
                "input_tokens": self.usage.input_tokens,
                "output_tokens": self.usage.output_tokens,
            },
            "stop_reason": self.stop_reason,
        }
