"""Anthropic text-completion client.

Wraps the Anthropic SDK behind the TextCompletion protocol so the rest of
the pipeline does not import ``anthropic`` directly. Provider failures are
classified here, once, into a ProviderErrorKind.

Environment variables:
    ANTHROPIC_API_KEY: API key used when none is passed explicitly.
"""

from __future__ import annotations

import logging
import time
from typing import Sequence

import anthropic

from mailqa_core.errors import ProviderError, ProviderErrorKind
from mailqa_core.types.completion import ChatMessage, Completion, Usage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEOUT_SECS = 300.0

_CREDIT_MARKERS = ("credit balance", "insufficient credit", "billing")


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    """Map an Anthropic SDK exception to a ProviderErrorKind.

    Args:
        exc: Exception raised by the SDK.

    Returns:
        The structured error kind.
    """
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderErrorKind.RATE_LIMITED
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ProviderErrorKind.UNAUTHORIZED
    if isinstance(exc, anthropic.APIStatusError):
        text = str(exc).lower()
        if any(marker in text for marker in _CREDIT_MARKERS):
            return ProviderErrorKind.INSUFFICIENT_CREDIT
    return ProviderErrorKind.UNKNOWN


class AnthropicCompletion:
    """TextCompletion implementation backed by ``anthropic.AsyncAnthropic``.

    Args:
        api_key: API key; falls back to the ANTHROPIC_API_KEY environment variable.
        timeout: Per-request timeout in seconds.
        client: Pre-built SDK client (mainly for tests).
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECS,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> Completion:
        """Send a conversation and return the text response.

        Raises:
            ProviderError: If the SDK call fails.
        """
        t0 = time.perf_counter()
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[m.to_dict() for m in messages],
            )
        except anthropic.AnthropicError as exc:
            kind = classify_provider_error(exc)
            logger.error("Completion failed (%s): %s", kind.value, exc)
            raise ProviderError(kind, str(exc)) from exc

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Completion model=%s duration_ms=%d in_tok=%d out_tok=%d stop=%s",
            model,
            duration_ms,
            response.usage.input_tokens,
            response.usage.output_tokens,
            response.stop_reason,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return Completion(
            text=text,
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            stop_reason=response.stop_reason,
        )
