"""Base class for single-purpose pipeline agents.

Each agent owns one conversation with the text-completion service. The
history accumulates across calls to the same agent instance, and agent
instances are created per run, so no conversation leaks between runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mailqa_core.errors import ProviderError
from mailqa_core.interfaces.completion import TextCompletion
from mailqa_core.types.completion import ChatMessage, Completion, Usage

from mailqa_agents.client import DEFAULT_MODEL
from mailqa_agents.result import Fallback, ModelT, Parsed, parse_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentSettings:
    """Model settings for one agent.

    Attributes:
        model: Model identifier.
        max_tokens: Response token budget.
        temperature: Sampling temperature.
    """

    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.0


class Agent:
    """A stateful, single-purpose conversation with the completion service.

    Subclasses set ``name`` and ``system_prompt`` and build prompts from
    pipeline data.

    Args:
        client: Text-completion client.
        settings: Model settings for this agent.
    """

    name: str = "agent"
    system_prompt: str = ""

    def __init__(self, client: TextCompletion, settings: AgentSettings | None = None) -> None:
        self._client = client
        self._settings = settings or AgentSettings()
        self._history: list[ChatMessage] = []
        self._input_tokens = 0
        self._output_tokens = 0

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        """Return the conversation so far."""
        return tuple(self._history)

    @property
    def usage(self) -> Usage:
        """Return token usage accumulated by this agent."""
        return Usage(input_tokens=self._input_tokens, output_tokens=self._output_tokens)

    def log(self, message: str, *args: object) -> None:
        """Log a message tagged with the agent name."""
        logger.info("[%s] " + message, self.name, *args)

    async def send(self, prompt: str) -> Completion:
        """Send a user prompt and record both turns in the history.

        Args:
            prompt: User message.

        Returns:
            The completion.

        Raises:
            ProviderError: If the service fails; the agent name is attached.
        """
        self._history.append(ChatMessage(role="user", content=prompt))
        try:
            completion = await self._client.complete(
                self.system_prompt,
                list(self._history),
                model=self._settings.model,
                max_tokens=self._settings.max_tokens,
                temperature=self._settings.temperature,
            )
        except ProviderError as exc:
            self._history.pop()
            exc.agent = self.name
            logger.error("[%s] Provider error: %s", self.name, exc.message)
            raise

        self._history.append(ChatMessage(role="assistant", content=completion.text))
        self._input_tokens += completion.usage.input_tokens
        self._output_tokens += completion.usage.output_tokens
        return completion

    async def ask_json(self, prompt: str, schema: type[ModelT]) -> Parsed[ModelT] | Fallback:
        """Send a prompt and parse the reply against a schema.

        Args:
            prompt: User message.
            schema: Expected response model.

        Returns:
            Parsed or Fallback; never raises for malformed responses.
        """
        completion = await self.send(prompt)
        result = parse_response(completion.text, schema)
        if isinstance(result, Fallback):
            logger.warning("[%s] AI analysis degraded: %s", self.name, result.reason)
        return result
