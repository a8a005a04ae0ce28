"""Text-completion service interface.

Protocols:
    TextCompletion: Send a conversation to a language model.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from typing import Protocol, Sequence

from mailqa_core.types.completion import ChatMessage, Completion


class TextCompletion(Protocol):
    """Protocol for text-completion clients.

    Implementations raise ProviderError, with a classified kind, for any
    provider failure. They do not retry or parse the response text.
    """

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        model: str,
        max_tokens: int,
        temperature: float = 0.0,
    ) -> Completion:
        """Request a completion.

        Args:
            system_prompt: System instructions for the agent.
            messages: Conversation history, oldest first, ending with a user turn.
            model: Model identifier.
            max_tokens: Response token budget.
            temperature: Sampling temperature.

        Returns:
            The completion text, usage, and stop reason.

        Raises:
            ProviderError: If the provider call fails.
        """
        ...
