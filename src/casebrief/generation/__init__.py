"""Staged generation: backends, stage definitions and the orchestrator."""

from .backend import AnthropicBackend, AsyncAnthropicBackend, build_message_kwargs, extract_text
from .callbacks import StageCallback
from .orchestrator import SingleStageGenerator, StageOrchestrator, advance_state
from .stages import (
    GenerationStage,
    StageInput,
    direct_generation_stage,
    extract_markers,
    fact_extraction_stage,
    missing_markers,
    structuring_stage,
    three_stage_pipeline,
    tone_finishing_stage,
)

__all__ = [
    "AnthropicBackend",
    "AsyncAnthropicBackend",
    "GenerationStage",
    "SingleStageGenerator",
    "StageCallback",
    "StageInput",
    "StageOrchestrator",
    "advance_state",
    "build_message_kwargs",
    "direct_generation_stage",
    "extract_markers",
    "extract_text",
    "fact_extraction_stage",
    "missing_markers",
    "structuring_stage",
    "three_stage_pipeline",
    "tone_finishing_stage",
]
