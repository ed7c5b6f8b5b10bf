"""Generation backend protocols."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from casebrief.models.pipeline import GenerationRequest


@runtime_checkable
class GenerationBackend(Protocol):
    """Synchronous request/response text generation service.

    The orchestrator treats the backend as opaque: it sends a
    ``GenerationRequest`` and uses the returned text as stage output.
    """

    def generate(self, request: GenerationRequest) -> str:
        """Generate text for a request.

        Parameters:
            request: Model id, messages, temperature and output ceiling.

        Returns:
            The generated text.

        Raises:
            GenerationBackendError: On transport or provider failure.
        """
        ...


@runtime_checkable
class AsyncGenerationBackend(Protocol):
    """Async variant of :class:`GenerationBackend`."""

    async def generate(self, request: GenerationRequest) -> str:
        """Generate text for a request asynchronously."""
        ...
