"""Tests for casebrief.generation.backend.

The Anthropic client is replaced by mocks, so no network access or API key
is needed.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from casebrief.exceptions import GenerationBackendError
from casebrief.generation.backend import (
    AnthropicBackend,
    AsyncAnthropicBackend,
    build_message_kwargs,
    extract_text,
)
from casebrief.models.pipeline import ChatMessage, GenerationRequest
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend


def _request(*messages: tuple[str, str]) -> GenerationRequest:
    return GenerationRequest(
        model="claude-test",
        messages=[ChatMessage(role=role, content=content) for role, content in messages],  # type: ignore[arg-type]
        temperature=0.3,
        max_output_tokens=500,
    )


def _response(*texts: str) -> SimpleNamespace:
    blocks = [SimpleNamespace(type="text", text=t) for t in texts]
    blocks.append(SimpleNamespace(type="tool_use", id="t1"))
    return SimpleNamespace(content=blocks)


class TestBuildMessageKwargs:
    def test_system_becomes_parameter(self) -> None:
        kwargs = build_message_kwargs(_request(("system", "be formal"), ("user", "write")))
        assert kwargs["system"] == "be formal"
        assert kwargs["messages"] == [{"role": "user", "content": "write"}]
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.3

    def test_no_system_omits_parameter(self) -> None:
        assert "system" not in build_message_kwargs(_request(("user", "write")))

    def test_requires_a_user_message(self) -> None:
        with pytest.raises(ValueError, match="at least one user message"):
            build_message_kwargs(_request(("system", "only system")))


class TestExtractText:
    def test_joins_text_blocks_only(self) -> None:
        assert extract_text(_response("Hello ", "world")) == "Hello world"

    def test_missing_content(self) -> None:
        assert extract_text(SimpleNamespace(content=None)) == ""


class TestAnthropicBackend:
    def test_generate(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = _response("Letter body")
        backend = AnthropicBackend(client=client)
        assert backend.generate(_request(("system", "s"), ("user", "u"))) == "Letter body"
        client.messages.create.assert_called_once()
        assert client.messages.create.call_args.kwargs["system"] == "s"

    def test_provider_error_wrapped(self) -> None:
        client = MagicMock()
        client.messages.create.side_effect = RuntimeError("overloaded")
        backend = AnthropicBackend(client=client, max_attempts=3)
        with pytest.raises(GenerationBackendError, match="overloaded") as exc:
            backend.generate(_request(("user", "u")))
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert client.messages.create.call_count == 1

    def test_invalid_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            AnthropicBackend(client=MagicMock(), max_attempts=0)

    def test_satisfies_protocol(self) -> None:
        assert isinstance(AnthropicBackend(client=MagicMock()), GenerationBackend)

    def test_repr(self) -> None:
        assert "max_attempts=1" in repr(AnthropicBackend(client=MagicMock()))


class TestAsyncAnthropicBackend:
    @pytest.mark.asyncio
    async def test_generate(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_response("Async body"))
        backend = AsyncAnthropicBackend(client=client)
        assert await backend.generate(_request(("user", "u"))) == "Async body"

    @pytest.mark.asyncio
    async def test_error_wrapped(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(GenerationBackendError, match="boom"):
            await AsyncAnthropicBackend(client=client).generate(_request(("user", "u")))

    def test_satisfies_protocol(self) -> None:
        assert isinstance(AsyncAnthropicBackend(client=MagicMock()), AsyncGenerationBackend)
