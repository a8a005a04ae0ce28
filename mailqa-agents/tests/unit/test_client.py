"""Unit tests for the Anthropic completion client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from mailqa_core.errors import ProviderError, ProviderErrorKind
from mailqa_core.types.completion import ChatMessage

from mailqa_agents.client import AnthropicCompletion, classify_provider_error


def _status_error(cls: type, status: int, message: str) -> anthropic.APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return cls(message, response=response, body=None)


class TestClassifyProviderError:
    """Tests for classify_provider_error."""

    def test_rate_limit(self) -> None:
        exc = _status_error(anthropic.RateLimitError, 429, "rate limited")
        assert classify_provider_error(exc) == ProviderErrorKind.RATE_LIMITED

    def test_unauthorized(self) -> None:
        exc = _status_error(anthropic.AuthenticationError, 401, "invalid x-api-key")
        assert classify_provider_error(exc) == ProviderErrorKind.UNAUTHORIZED

    def test_insufficient_credit(self) -> None:
        exc = _status_error(
            anthropic.BadRequestError, 400, "Your credit balance is too low to access the API"
        )
        assert classify_provider_error(exc) == ProviderErrorKind.INSUFFICIENT_CREDIT

    def test_other_errors_unknown(self) -> None:
        exc = _status_error(anthropic.InternalServerError, 500, "overloaded")
        assert classify_provider_error(exc) == ProviderErrorKind.UNKNOWN
        assert classify_provider_error(RuntimeError("boom")) == ProviderErrorKind.UNKNOWN


class TestAnthropicCompletion:
    """Tests for AnthropicCompletion."""

    @pytest.mark.asyncio
    async def test_complete_returns_text_and_usage(self) -> None:
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="hello "),
                    SimpleNamespace(type="text", text="world"),
                ],
                usage=SimpleNamespace(input_tokens=10, output_tokens=3),
                stop_reason="end_turn",
            )
        )
        client = AnthropicCompletion(client=sdk)

        completion = await client.complete(
            "system", [ChatMessage(role="user", content="hi")], model="m", max_tokens=100
        )

        assert completion.text == "hello world"
        assert completion.usage.total_tokens == 13
        assert completion.stop_reason == "end_turn"
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["model"] == "m"

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_provider_error(self) -> None:
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(
            side_effect=_status_error(anthropic.RateLimitError, 429, "slow down")
        )
        client = AnthropicCompletion(client=sdk)

        with pytest.raises(ProviderError) as info:
            await client.complete("s", [ChatMessage(role="user", content="hi")])

        assert info.value.kind == ProviderErrorKind.RATE_LIMITED
