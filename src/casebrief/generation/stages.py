"""Generation stages: one backend call each, returning a StageResult."""

from __future__ import annotations

import inspect
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from casebrief.exceptions import MarkerPreservationError
from casebrief.models.context import CompactGuidance
from casebrief.models.pipeline import (
    CaseDetails,
    ChatMessage,
    FirmProfile,
    GenerationRequest,
    MarkerPolicy,
    StageName,
    StageResult,
    StageSettings,
    StageStatus,
)
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend

from . import prompts

logger = logging.getLogger(__name__)

_BOLD_MARKER = re.compile(r"\*\*[^*\n]+?\*\*")


def extract_markers(text: str) -> list[str]:
    """Bold markers (``**...**``) in order of first appearance, without duplicates."""
    seen: dict[str, None] = {}
    for match in _BOLD_MARKER.finditer(text):
        seen.setdefault(match.group(0), None)
    return list(seen)


def missing_markers(source: str, rewritten: str) -> list[str]:
    """Markers present in ``source`` that do not appear verbatim in ``rewritten``."""
    return [m for m in extract_markers(source) if m not in rewritten]


@dataclass(slots=True)
class StageInput:
    """Everything a stage may draw on; ``previous_output`` is the prior stage's text."""

    case: CaseDetails
    firm: FirmProfile
    evidence: str = ""
    guidance: CompactGuidance | None = None
    additional_context: str | None = None
    previous_output: str | None = None


RequestBuilder = Callable[[StageInput, StageSettings], GenerationRequest]


@dataclass(slots=True)
class GenerationStage:
    """A single step of a generation pipeline.

    ``build_request`` turns the stage input into a backend request.  The
    stage never raises on backend failure: the error is captured in the
    returned ``StageResult``.  With ``preserve_markers`` set, bold markers of
    the previous output must survive verbatim in this stage's output.
    """

    name: StageName
    build_request: RequestBuilder
    percent: int
    message: str
    input_ref: str
    preserve_markers: bool = False

    def _failed(self, step: int, error: str, settings: StageSettings, start: float) -> StageResult:
        return StageResult(
            name=self.name,
            step=step,
            input_ref=self.input_ref,
            status=StageStatus.FAILED,
            error=error,
            model=settings.model,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )

    def _finish(
        self,
        output: Any,
        payload: StageInput,
        settings: StageSettings,
        step: int,
        start: float,
        marker_policy: MarkerPolicy,
    ) -> StageResult:
        if not isinstance(output, str):
            return self._failed(step, f"backend returned {type(output).__name__}, expected str", settings, start)
        if not output.strip():
            return self._failed(step, "backend returned empty output", settings, start)

        lost: list[str] = []
        if self.preserve_markers and payload.previous_output:
            lost = missing_markers(payload.previous_output, output)
            if lost:
                err = MarkerPreservationError(
                    f"{len(lost)} structural marker(s) lost: {', '.join(lost[:5])}", missing=lost,
                )
                if marker_policy == "fail":
                    return self._failed(step, str(err), settings, start).model_copy(
                        update={"missing_markers": tuple(lost)},
                    )
                logger.warning("Stage '%s': %s", self.name.value, err)

        return StageResult(
            name=self.name,
            step=step,
            input_ref=self.input_ref,
            status=StageStatus.SUCCEEDED,
            output=output,
            model=settings.model,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
            missing_markers=tuple(lost),
        )

    def execute(
        self,
        backend: GenerationBackend,
        payload: StageInput,
        settings: StageSettings,
        step: int,
        marker_policy: MarkerPolicy = "fail",
    ) -> StageResult:
        """Run this stage synchronously against a sync backend."""
        start = time.monotonic()
        try:
            request = self.build_request(payload, settings)
            output = backend.generate(request)
        except Exception as exc:
            logger.exception("Stage '%s' failed", self.name.value)
            return self._failed(step, str(exc) or type(exc).__name__, settings, start)
        if inspect.isawaitable(output):
            if inspect.iscoroutine(output):
                output.close()
            msg = (
                f"Stage '{self.name.value}' got an awaitable from the backend. "
                "Use arun() with an async backend."
            )
            raise TypeError(msg)
        return self._finish(output, payload, settings, step, start, marker_policy)

    async def aexecute(
        self,
        backend: GenerationBackend | AsyncGenerationBackend,
        payload: StageInput,
        settings: StageSettings,
        step: int,
        marker_policy: MarkerPolicy = "fail",
    ) -> StageResult:
        """Run this stage asynchronously.

        Works for both sync and async backends -- sync ``generate`` results
        are used directly, awaitables are awaited.
        """
        start = time.monotonic()
        try:
            request = self.build_request(payload, settings)
            output = backend.generate(request)
            if inspect.isawaitable(output):
                output = await output
        except Exception as exc:
            logger.exception("Stage '%s' failed", self.name.value)
            return self._failed(step, str(exc) or type(exc).__name__, settings, start)
        return self._finish(output, payload, settings, step, start, marker_policy)


def _request(settings: StageSettings, system: str, user: str) -> GenerationRequest:
    return GenerationRequest(
        model=settings.model,
        messages=[
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=user),
        ],
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )


def _fact_extraction_request(payload: StageInput, settings: StageSettings) -> GenerationRequest:
    user = prompts.fact_extraction_prompt(payload.case, payload.evidence, payload.guidance)
    return _request(settings, prompts.FACT_EXTRACTION_SYSTEM, user)


def _structuring_request(payload: StageInput, settings: StageSettings) -> GenerationRequest:
    if not payload.previous_output:
        msg = "Structuring requires the fact sheet from fact extraction"
        raise ValueError(msg)
    user = prompts.structuring_prompt(payload.previous_output, payload.firm, payload.additional_context)
    return _request(settings, prompts.STRUCTURING_SYSTEM, user)


def _tone_finishing_request(payload: StageInput, settings: StageSettings) -> GenerationRequest:
    if not payload.previous_output:
        msg = "Tone finishing requires the structured draft"
        raise ValueError(msg)
    user = prompts.tone_finishing_prompt(payload.previous_output, payload.firm)
    return _request(settings, prompts.TONE_FINISHING_SYSTEM, user)


def _direct_generation_request(payload: StageInput, settings: StageSettings) -> GenerationRequest:
    user = prompts.direct_generation_prompt(
        payload.case, payload.firm, payload.evidence, payload.additional_context,
    )
    return _request(settings, prompts.DIRECT_GENERATION_SYSTEM, user)


def fact_extraction_stage() -> GenerationStage:
    return GenerationStage(
        name=StageName.FACT_EXTRACTION,
        build_request=_fact_extraction_request,
        percent=33,
        message="Facts extracted successfully",
        input_ref="analysis",
    )


def structuring_stage() -> GenerationStage:
    return GenerationStage(
        name=StageName.STRUCTURING,
        build_request=_structuring_request,
        percent=66,
        message="Letter structure complete",
        input_ref=StageName.FACT_EXTRACTION.value,
    )


def tone_finishing_stage() -> GenerationStage:
    return GenerationStage(
        name=StageName.TONE_FINISHING,
        build_request=_tone_finishing_request,
        percent=100,
        message="Professional tone added",
        input_ref=StageName.STRUCTURING.value,
        preserve_markers=True,
    )


def direct_generation_stage() -> GenerationStage:
    return GenerationStage(
        name=StageName.DIRECT_GENERATION,
        build_request=_direct_generation_request,
        percent=100,
        message="Letter generated",
        input_ref="analysis",
    )


def three_stage_pipeline() -> list[GenerationStage]:
    """Fact extraction, structuring and tone finishing, in that order."""
    return [fact_extraction_stage(), structuring_stage(), tone_finishing_stage()]
