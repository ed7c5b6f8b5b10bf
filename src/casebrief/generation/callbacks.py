"""Stage callback protocol for observability and event hooks."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from casebrief.models.pipeline import PipelineRun, StageResult


@runtime_checkable
class StageCallback(Protocol):
    """Protocol for generation pipeline event callbacks.

    Implement only the methods you need; missing methods are skipped and
    exceptions raised by callbacks are logged, never propagated.
    """

    def on_run_start(self, run: PipelineRun) -> None: ...
    def on_stage_start(self, stage_name: str, step: int) -> None: ...
    def on_stage_end(self, result: StageResult) -> None: ...
    def on_stage_error(self, stage_name: str, error: str) -> None: ...
    def on_run_end(self, run: PipelineRun) -> None: ...
