"""Generation backends built on the Anthropic Messages API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from casebrief.exceptions import GenerationBackendError
from casebrief.models.pipeline import GenerationRequest

logger = logging.getLogger(__name__)


def _retryable_errors() -> tuple[type[Exception], ...]:
    """Return the tuple of transient Anthropic exception types.

    Returns an empty tuple when the ``anthropic`` package is not installed,
    which means nothing is retried (correct for test environments that use
    a fake client).
    """
    try:
        import anthropic as _anthropic
    except ImportError:
        return ()
    return (
        _anthropic.RateLimitError,
        _anthropic.APIConnectionError,
        _anthropic.APITimeoutError,
    )


def build_message_kwargs(request: GenerationRequest) -> dict[str, Any]:
    """Translate a ``GenerationRequest`` into Messages API keyword arguments.

    System messages become the ``system`` parameter; the remaining messages
    are sent in order.
    """
    conversation = request.conversation
    if not conversation:
        msg = "A generation request needs at least one user message"
        raise ValueError(msg)
    kwargs: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_output_tokens,
        "temperature": request.temperature,
        "messages": [{"role": m.role, "content": m.content} for m in conversation],
    }
    system = request.system_prompt
    if system:
        kwargs["system"] = system
    return kwargs


def extract_text(response: Any) -> str:
    """Join the text blocks of a Messages API response."""
    parts: list[str] = []
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            parts.append(block.text)
    return "".join(parts)


def _create_client(api_key: str | None, *, async_client: bool) -> Any:
    try:
        import anthropic
    except ImportError:
        msg = (
            "anthropic is required for the Anthropic backends. "
            "Install with: pip install casebrief[anthropic]"
        )
        raise ImportError(msg) from None
    if async_client:
        return anthropic.AsyncAnthropic(api_key=api_key)
    return anthropic.Anthropic(api_key=api_key)


class AnthropicBackend:
    """Synchronous generation backend.

    Implements the ``GenerationBackend`` protocol.  Provider and transport
    errors are raised as ``GenerationBackendError``.  ``max_attempts``
    bounds transport-level retries (rate limit, connection, timeout); the
    default of one attempt leaves retry decisions to the caller.

    Parameters:
        api_key: Anthropic API key; read from the environment by the SDK
            when omitted.
        client: Pre-built client, mainly for tests.
        max_attempts: Number of attempts for transient transport errors.
    """

    __slots__ = ("_client", "_max_attempts")

    def __init__(
        self,
        *,
        api_key: str | None = None,
        client: Any = None,
        max_attempts: int = 1,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        self._client = client if client is not None else _create_client(api_key, async_client=False)
        self._max_attempts = max_attempts

    def generate(self, request: GenerationRequest) -> str:
        kwargs = build_message_kwargs(request)
        retryable = _retryable_errors()
        logger.info(
            "Calling %s (%d message chars, max_tokens=%d)",
            request.model, sum(len(m.content) for m in request.messages), request.max_output_tokens,
        )
        start = time.monotonic()
        for attempt in range(self._max_attempts):
            try:
                response = self._client.messages.create(**kwargs)
                break
            except retryable as exc:
                if attempt + 1 >= self._max_attempts:
                    msg = f"Generation call to {request.model} failed: {exc}"
                    raise GenerationBackendError(msg) from exc
                delay = 2**attempt
                logger.warning(
                    "Generation call failed (attempt %d/%d): %s. Retrying in %ds...",
                    attempt + 1, self._max_attempts, exc, delay,
                )
                time.sleep(delay)
            except Exception as exc:
                msg = f"Generation call to {request.model} failed: {exc}"
                raise GenerationBackendError(msg) from exc
        text = extract_text(response)
        logger.info(
            "%s responded in %.2fs (%d chars)", request.model, time.monotonic() - start, len(text),
        )
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(max_attempts={self._max_attempts})"


class AsyncAnthropicBackend:
    """Async variant of :class:`AnthropicBackend`.

    Implements the ``AsyncGenerationBackend`` protocol.
    """

    __slots__ = ("_client", "_max_attempts")

    def __init__(
        self,
        *,
        api_key: str | None = None,
        client: Any = None,
        max_attempts: int = 1,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        self._client = client if client is not None else _create_client(api_key, async_client=True)
        self._max_attempts = max_attempts

    async def generate(self, request: GenerationRequest) -> str:
        kwargs = build_message_kwargs(request)
        retryable = _retryable_errors()
        start = time.monotonic()
        for attempt in range(self._max_attempts):
            try:
                response = await self._client.messages.create(**kwargs)
                break
            except retryable as exc:
                if attempt + 1 >= self._max_attempts:
                    msg = f"Generation call to {request.model} failed: {exc}"
                    raise GenerationBackendError(msg) from exc
                delay = 2**attempt
                logger.warning(
                    "Async generation call failed (attempt %d/%d): %s. Retrying in %ds...",
                    attempt + 1, self._max_attempts, exc, delay,
                )
                await asyncio.sleep(delay)
            except Exception as exc:
                msg = f"Generation call to {request.model} failed: {exc}"
                raise GenerationBackendError(msg) from exc
        text = extract_text(response)
        logger.info(
            "%s responded in %.2fs (%d chars)", request.model, time.monotonic() - start, len(text),
        )
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(max_attempts={self._max_attempts})"
