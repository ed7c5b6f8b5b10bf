"""StageOrchestrator -- drives the staged generation pipeline."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, ClassVar

from casebrief._callbacks import ProgressCallback, fire_callbacks, report_progress
from casebrief.models.context import CompactGuidance
from casebrief.models.pipeline import (
    CaseDetails,
    FirmProfile,
    OrchestratorSettings,
    PipelineMode,
    PipelineRun,
    PipelineState,
    RunStatus,
    StageResult,
    StageStatus,
)
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend

from .callbacks import StageCallback
from .stages import GenerationStage, StageInput, direct_generation_stage, three_stage_pipeline

logger = logging.getLogger(__name__)

_FORWARD_ORDER: tuple[PipelineState, ...] = (
    PipelineState.IDLE,
    PipelineState.FACT_EXTRACTION,
    PipelineState.STRUCTURING,
    PipelineState.TONE_FINISHING,
    PipelineState.DIRECT_GENERATION,
    PipelineState.COMPLETE,
)


def advance_state(run: PipelineRun, target: PipelineState) -> None:
    """Move a run to ``target``; only forward moves (or failure) are allowed."""
    current = run.state
    if current in (PipelineState.COMPLETE, PipelineState.FAILED):
        msg = f"Run {run.run_id} is terminal ({current.value}); cannot move to {target.value}"
        raise ValueError(msg)
    if target != PipelineState.FAILED and _FORWARD_ORDER.index(target) <= _FORWARD_ORDER.index(current):
        msg = f"Illegal transition {current.value} -> {target.value}"
        raise ValueError(msg)
    run.state = target


class StageOrchestrator:
    """Runs fact extraction, structuring and tone finishing in strict order.

    Usage::

        orchestrator = StageOrchestrator(AnthropicBackend())
        run = orchestrator.run(case, firm, evidence=context.text, on_progress=report)
        run.raise_for_failure()
        letter = run.artifact

    For async backends::

        run = await orchestrator.arun(case, firm, evidence=context.text)

    Each stage's output is the next stage's input.  The driver stops at the
    first failed stage: later stages are never called and the returned run
    keeps the outputs of the stages that did succeed.  Nothing is retried.
    ``on_progress`` is called after each successful stage with the stage
    name and its checkpoint (33, 66, 100).
    """

    mode: ClassVar[PipelineMode] = PipelineMode.THREE_STAGE

    def __init__(
        self,
        backend: GenerationBackend | AsyncGenerationBackend,
        settings: OrchestratorSettings | None = None,
        callbacks: Sequence[StageCallback] = (),
    ) -> None:
        self._backend = backend
        self._settings = settings or OrchestratorSettings()
        self._callbacks: list[StageCallback] = list(callbacks)
        self._stages: list[GenerationStage] = self._default_stages()

    def _default_stages(self) -> list[GenerationStage]:
        return three_stage_pipeline()

    # -- Read-only properties --

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    @property
    def stages(self) -> list[GenerationStage]:
        """A copy of the registered stages, in execution order."""
        return list(self._stages)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(stages={[s.name.value for s in self._stages]}, "
            f"marker_policy='{self._settings.marker_policy}')"
        )

    def add_callback(self, callback: StageCallback) -> StageOrchestrator:
        """Register an event callback. Returns self for chaining."""
        self._callbacks.append(callback)
        return self

    def _fire(self, method: str, *args: Any) -> None:
        fire_callbacks(self._callbacks, method, *args, logger=logger, log_level=logging.WARNING)

    # -- Shared driver helpers (DRY for run/arun) --

    def _new_run(self) -> PipelineRun:
        run = PipelineRun(
            mode=self.mode,
            stages=[
                StageResult(name=stage.name, step=i, input_ref=stage.input_ref)
                for i, stage in enumerate(self._stages, start=1)
            ],
        )
        run.status = RunStatus.RUNNING
        logger.info("Starting %s generation run %s", self.mode.value, run.run_id)
        self._fire("on_run_start", run)
        return run

    def _start_stage(self, run: PipelineRun, stage: GenerationStage, step: int) -> None:
        advance_state(run, PipelineState(stage.name.value))
        logger.info("Stage %d/%d starting: %s", step, len(self._stages), stage.name.value)
        self._fire("on_stage_start", stage.name.value, step)

    def _record(
        self,
        run: PipelineRun,
        stage: GenerationStage,
        result: StageResult,
        payload: StageInput,
        on_progress: ProgressCallback | None,
    ) -> bool:
        """Store a stage result. Returns True when the next stage may run."""
        run.stages[result.step - 1] = result
        total = len(self._stages)

        if result.status == StageStatus.FAILED:
            advance_state(run, PipelineState.FAILED)
            run.status = RunStatus.FAILED
            run.failed_stage = stage.name
            run.finished_at = datetime.now(UTC)
            run.diagnostics["failed_stage"] = stage.name.value
            logger.error(
                "Could not complete step %d of %d (%s): %s",
                result.step, total, stage.name.value, result.error,
            )
            self._fire("on_stage_error", stage.name.value, result.error or "")
            self._fire("on_run_end", run)
            return False

        logger.info(
            "Stage %d/%d complete: %s (%.0f ms, %d chars)",
            result.step, total, stage.name.value, result.duration_ms, len(result.output or ""),
        )
        if result.missing_markers:
            run.diagnostics.setdefault("missing_markers", {})[stage.name.value] = list(result.missing_markers)
        self._fire("on_stage_end", result)
        report_progress(on_progress, stage.name.value, stage.percent, stage.message, logger=logger)
        payload.previous_output = result.output
        return True

    def _complete(self, run: PipelineRun) -> PipelineRun:
        advance_state(run, PipelineState.COMPLETE)
        run.artifact = run.stages[-1].output
        run.status = RunStatus.SUCCEEDED
        run.finished_at = datetime.now(UTC)
        run.diagnostics["duration_ms"] = round(
            (run.finished_at - run.started_at).total_seconds() * 1000, 2,
        )
        logger.info("Generation run %s complete (%d chars)", run.run_id, len(run.artifact or ""))
        self._fire("on_run_end", run)
        return run

    @staticmethod
    def _payload(
        case: CaseDetails,
        firm: FirmProfile,
        evidence: str,
        guidance: CompactGuidance | None,
        additional_context: str | None,
    ) -> StageInput:
        return StageInput(
            case=case,
            firm=firm,
            evidence=evidence,
            guidance=guidance,
            additional_context=additional_context,
        )

    # -- Public entry points --

    def run(
        self,
        case: CaseDetails,
        firm: FirmProfile | None = None,
        *,
        evidence: str = "",
        guidance: CompactGuidance | None = None,
        additional_context: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        """Execute every stage synchronously and return the finished run."""
        if inspect.iscoroutinefunction(getattr(self._backend, "generate", None)):
            msg = "Backend is async and cannot be driven synchronously. Use arun() instead."
            raise TypeError(msg)
        payload = self._payload(case, firm or FirmProfile(), evidence, guidance, additional_context)
        run = self._new_run()
        for step, stage in enumerate(self._stages, start=1):
            self._start_stage(run, stage, step)
            result = stage.execute(
                self._backend, payload, self._settings.for_stage(stage.name), step,
                self._settings.marker_policy,
            )
            if not self._record(run, stage, result, payload, on_progress):
                return run
        return self._complete(run)

    async def arun(
        self,
        case: CaseDetails,
        firm: FirmProfile | None = None,
        *,
        evidence: str = "",
        guidance: CompactGuidance | None = None,
        additional_context: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineRun:
        """Execute every stage, awaiting each backend call before the next stage."""
        payload = self._payload(case, firm or FirmProfile(), evidence, guidance, additional_context)
        run = self._new_run()
        for step, stage in enumerate(self._stages, start=1):
            self._start_stage(run, stage, step)
            result = await stage.aexecute(
                self._backend, payload, self._settings.for_stage(stage.name), step,
                self._settings.marker_policy,
            )
            if not self._record(run, stage, result, payload, on_progress):
                return run
        return self._complete(run)


class SingleStageGenerator(StageOrchestrator):
    """Opt-out sibling of the three-stage pipeline: one direct generation call.

    Produces a ``PipelineRun`` in ``single_stage`` mode with one stage result
    and a single progress checkpoint at 100.
    """

    mode: ClassVar[PipelineMode] = PipelineMode.SINGLE_STAGE

    def _default_stages(self) -> list[GenerationStage]:
        return [direct_generation_stage()]
