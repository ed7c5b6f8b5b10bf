"""CaseBriefService -- admission, context assembly and generation in one call."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from casebrief._callbacks import ProgressCallback
from casebrief.context.assembler import ContextAssembler
from casebrief.generation import prompts
from casebrief.generation.callbacks import StageCallback
from casebrief.generation.orchestrator import SingleStageGenerator, StageOrchestrator
from casebrief.models.context import AssembledContext, PrecedentHit, ReferenceHit, SourceDocument
from casebrief.models.pipeline import (
    CaseDetails,
    ChatMessage,
    FirmProfile,
    GenerationRequest,
    OrchestratorSettings,
    PipelineRun,
    StageSettings,
)
from casebrief.models.rate_limit import AdmissionResult, Identity, OperationClass
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend
from casebrief.ratelimit.gate import AdmissionGate

logger = logging.getLogger(__name__)

ANALYSIS_SETTINGS = StageSettings(model="claude-sonnet-4-5", temperature=0.3, max_output_tokens=4000)


class CaseBriefService:
    """Entry point for request handlers.

    Usage::

        service = CaseBriefService(gate, backend)
        run = service.generate(identity, case, firm, sources=docs, references=refs)
        letter = run.artifact

    Every operation is admitted by the gate before any context is assembled
    or any backend call is made.  A rejected request raises
    ``QuotaExceededError``; a failed stage raises ``StageExecutionError``
    with the earlier stage outputs attached.
    """

    __slots__ = (
        "_analysis_settings",
        "_assembler",
        "_backend",
        "_gate",
        "_single_stage",
        "_three_stage",
    )

    def __init__(
        self,
        gate: AdmissionGate,
        backend: GenerationBackend | AsyncGenerationBackend,
        assembler: ContextAssembler | None = None,
        *,
        settings: OrchestratorSettings | None = None,
        analysis_settings: StageSettings | None = None,
        callbacks: Sequence[StageCallback] = (),
    ) -> None:
        self._gate = gate
        self._backend = backend
        self._assembler = assembler or ContextAssembler()
        self._three_stage = StageOrchestrator(backend, settings, callbacks)
        self._single_stage = SingleStageGenerator(backend, settings, callbacks)
        self._analysis_settings = analysis_settings or ANALYSIS_SETTINGS

    @property
    def gate(self) -> AdmissionGate:
        return self._gate

    @property
    def assembler(self) -> ContextAssembler:
        return self._assembler

    @property
    def orchestrator(self) -> StageOrchestrator:
        return self._three_stage

    @property
    def single_stage(self) -> SingleStageGenerator:
        return self._single_stage

    def __repr__(self) -> str:
        return f"{type(self).__name__}(gate={self._gate!r}, orchestrator={self._three_stage!r})"

    # -- Shared helpers --

    def _assemble(
        self,
        case_context: str,
        sources: Sequence[SourceDocument],
        references: Sequence[ReferenceHit],
        precedents: Sequence[PrecedentHit],
    ) -> AssembledContext:
        context = self._assembler.assemble(case_context, sources, references, precedents)
        logger.info(
            "Assembled %d tokens of evidence (%.0f%% of budget)",
            context.estimated_tokens, context.utilization * 100,
        )
        return context

    @staticmethod
    def _log_admission(result: AdmissionResult) -> None:
        if result.degraded:
            logger.warning(
                "Proceeding without rate limiting for %s (%s)",
                result.identity, result.operation_class.value,
            )

    def _analysis_request(self, context: AssembledContext) -> GenerationRequest:
        settings = self._analysis_settings
        return GenerationRequest(
            model=settings.model,
            messages=[
                ChatMessage(role="system", content=prompts.ANALYSIS_SYSTEM),
                ChatMessage(role="user", content=prompts.analysis_prompt(context.text)),
            ],
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )

    # -- Generation --

    def generate(
        self,
        identity: Identity,
        case: CaseDetails,
        firm: FirmProfile | None = None,
        *,
        sources: Sequence[SourceDocument] = (),
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
        case_context: str = "",
        additional_context: str | None = None,
        on_progress: ProgressCallback | None = None,
        three_stage: bool = True,
    ) -> PipelineRun:
        """Admit, assemble and generate a brief.

        Parameters:
            identity: The caller the generation quota is charged to.
            case: Upstream analysis and identifiers of the case.
            firm: Practice and preparer details for the letter.
            sources: Uploaded documents, all of which are considered.
            references: Ranked reference hits; the top ones are used.
            precedents: Ranked precedent hits; the top ones are used.
            case_context: Free-form case background.
            additional_context: Caller instructions for the structuring stage.
            on_progress: ``(stage_name, percent, message)`` progress hook.
            three_stage: Use the single direct-generation path when False.

        Returns:
            The succeeded ``PipelineRun``; ``run.artifact`` holds the brief.

        Raises:
            QuotaExceededError: The generation quota is exhausted.
            StageExecutionError: A stage failed.
        """
        self._log_admission(self._gate.admit(identity, OperationClass.GENERATION))
        context = self._assemble(case_context, sources, references, precedents)
        generator = self._three_stage if three_stage else self._single_stage
        run = generator.run(
            case,
            firm,
            evidence=context.text,
            guidance=self._assembler.compact_guidance(references, precedents),
            additional_context=additional_context,
            on_progress=on_progress,
        )
        run.raise_for_failure()
        return run

    async def agenerate(
        self,
        identity: Identity,
        case: CaseDetails,
        firm: FirmProfile | None = None,
        *,
        sources: Sequence[SourceDocument] = (),
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
        case_context: str = "",
        additional_context: str | None = None,
        on_progress: ProgressCallback | None = None,
        three_stage: bool = True,
    ) -> PipelineRun:
        """Async variant of :meth:`generate`."""
        self._log_admission(await self._gate.aadmit(identity, OperationClass.GENERATION))
        context = self._assemble(case_context, sources, references, precedents)
        generator = self._three_stage if three_stage else self._single_stage
        run = await generator.arun(
            case,
            firm,
            evidence=context.text,
            guidance=self._assembler.compact_guidance(references, precedents),
            additional_context=additional_context,
            on_progress=on_progress,
        )
        run.raise_for_failure()
        return run

    # -- Analysis --

    def analyze(
        self,
        identity: Identity,
        *,
        sources: Sequence[SourceDocument] = (),
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
        case_context: str = "",
    ) -> str:
        """Analyse the evidence with a single backend call.

        Raises:
            QuotaExceededError: The analysis quota is exhausted.
            GenerationBackendError: The backend call failed.
        """
        self._log_admission(self._gate.admit(identity, OperationClass.ANALYSIS))
        context = self._assemble(case_context, sources, references, precedents)
        text = self._backend.generate(self._analysis_request(context))
        if inspect.isawaitable(text):
            if inspect.iscoroutine(text):
                text.close()
            msg = "Backend is async and cannot be driven synchronously. Use aanalyze() instead."
            raise TypeError(msg)
        return text

    async def aanalyze(
        self,
        identity: Identity,
        *,
        sources: Sequence[SourceDocument] = (),
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
        case_context: str = "",
    ) -> str:
        """Async variant of :meth:`analyze`."""
        self._log_admission(await self._gate.aadmit(identity, OperationClass.ANALYSIS))
        context = self._assemble(case_context, sources, references, precedents)
        text = self._backend.generate(self._analysis_request(context))
        if inspect.isawaitable(text):
            text = await text
        return text
