"""Generation request and pipeline run models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from casebrief.exceptions import StageExecutionError

Role = Literal["system", "user", "assistant"]
MarkerPolicy = Literal["fail", "warn"]


class ChatMessage(BaseModel):
    """A single message sent to the generation backend."""

    role: Role
    content: str

    model_config = ConfigDict(frozen=True)


class GenerationRequest(BaseModel):
    """Request shape accepted by every generation backend."""

    model: str
    messages: list[ChatMessage]
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2000, gt=0)

    model_config = ConfigDict(frozen=True)

    @property
    def system_prompt(self) -> str:
        """All system messages joined, in order."""
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    @property
    def conversation(self) -> list[ChatMessage]:
        """The non-system messages, in order."""
        return [m for m in self.messages if m.role != "system"]


class StageName(StrEnum):
    """Names of the generation stages, in execution order."""

    FACT_EXTRACTION = "fact_extraction"
    STRUCTURING = "structuring"
    TONE_FINISHING = "tone_finishing"
    DIRECT_GENERATION = "direct_generation"


class PipelineState(StrEnum):
    """Orchestrator states. Transitions only move forward."""

    IDLE = "idle"
    FACT_EXTRACTION = "fact_extraction"
    STRUCTURING = "structuring"
    TONE_FINISHING = "tone_finishing"
    DIRECT_GENERATION = "direct_generation"
    COMPLETE = "complete"
    FAILED = "failed"


class PipelineMode(StrEnum):
    THREE_STAGE = "three_stage"
    SINGLE_STAGE = "single_stage"


class StageStatus(StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CaseDetails(BaseModel):
    """Upstream analysis and identifiers of the case a brief is generated for."""

    analysis: dict[str, Any] | str
    case_reference: str
    department: str = ""


class FirmProfile(BaseModel):
    """Identity of the practice and the person preparing the brief."""

    practice_name: str = ""
    letterhead: str = ""
    billing_rate: float | None = Field(default=None, gt=0)
    preparer_name: str = ""
    preparer_title: str = ""
    email: str | None = None
    phone: str | None = None

    @property
    def display_name(self) -> str:
        """Practice name, falling back to the first letterhead line."""
        if self.practice_name:
            return self.practice_name
        return self.letterhead.split("\n", 1)[0] if self.letterhead else ""


class StageSettings(BaseModel):
    """Backend parameters for one stage."""

    model: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2500, gt=0)

    model_config = ConfigDict(frozen=True)


class OrchestratorSettings(BaseModel):
    """Per-stage backend parameters and the marker preservation policy."""

    fact_extraction: StageSettings = StageSettings(
        model="claude-sonnet-4-5", temperature=0.2, max_output_tokens=2500,
    )
    structuring: StageSettings = StageSettings(
        model="claude-opus-4-1", temperature=0.2, max_output_tokens=2500,
    )
    tone_finishing: StageSettings = StageSettings(
        model="claude-opus-4-1", temperature=0.3, max_output_tokens=3500,
    )
    direct_generation: StageSettings = StageSettings(
        model="claude-sonnet-4-5", temperature=0.7, max_output_tokens=4000,
    )
    marker_policy: MarkerPolicy = "fail"

    model_config = ConfigDict(frozen=True)

    def for_stage(self, name: StageName) -> StageSettings:
        return getattr(self, name.value)


class StageResult(BaseModel):
    """Outcome of a single stage. Replaced, never mutated, as the run advances."""

    name: StageName
    step: int = Field(ge=1)
    input_ref: str
    status: StageStatus = StageStatus.PENDING
    output: str | None = None
    error: str | None = None
    model: str | None = None
    duration_ms: float = Field(default=0.0, ge=0.0)
    missing_markers: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


class PipelineRun(BaseModel):
    """One execution of a generation pipeline, owned by the calling request."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    mode: PipelineMode = PipelineMode.THREE_STAGE
    state: PipelineState = PipelineState.IDLE
    status: RunStatus = RunStatus.PENDING
    stages: list[StageResult]
    artifact: str | None = None
    failed_stage: StageName | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_shape(self) -> Self:
        expected = 3 if self.mode == PipelineMode.THREE_STAGE else 1
        if len(self.stages) != expected:
            msg = f"A {self.mode.value} run has exactly {expected} stage(s), got {len(self.stages)}"
            raise ValueError(msg)
        if self.artifact is not None and self.status != RunStatus.SUCCEEDED:
            msg = "Only a succeeded run carries an artifact"
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.SUCCEEDED, RunStatus.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def partial_outputs(self) -> dict[str, str]:
        """Outputs of every stage that succeeded, keyed by stage name."""
        return {
            s.name.value: s.output
            for s in self.stages
            if s.status == StageStatus.SUCCEEDED and s.output is not None
        }

    def stage(self, name: StageName) -> StageResult:
        for result in self.stages:
            if result.name == name:
                return result
        msg = f"Run has no stage named '{name.value}'"
        raise KeyError(msg)

    def raise_for_failure(self) -> None:
        """Raise ``StageExecutionError`` if the run failed."""
        if self.status != RunStatus.FAILED or self.failed_stage is None:
            return
        failed = self.stage(self.failed_stage)
        raise StageExecutionError(
            failed.name.value,
            failed.step,
            len(self.stages),
            reason=failed.error or "",
            partial_outputs=self.partial_outputs,
            run=self,
        )
