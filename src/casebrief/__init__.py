"""casebrief: bounded-context, staged generation of case briefs.

Service:
    CaseBriefService, build_service

Context Assembly:
    ContextAssembler, AssemblerSettings, SectionSummarizer, top_by_relevance

Generation:
    StageOrchestrator, SingleStageGenerator, GenerationStage, StageInput,
    StageCallback, AnthropicBackend, AsyncAnthropicBackend,
    fact_extraction_stage, structuring_stage, tone_finishing_stage,
    direct_generation_stage, three_stage_pipeline, extract_markers

Admission Control:
    AdmissionGate, InMemoryCounterStore, RedisCounterStore, resolve_identity,
    classify_operation, rate_limit_headers

Protocols (extension points):
    Tokenizer, GenerationBackend, AsyncGenerationBackend, CounterStore

Models & Types:
    TokenBudget, CategoryAllocation, ContextCategory, SourceDocument,
    ReferenceHit, PrecedentHit, ContextSection, AssembledContext,
    CompactGuidance, CaseDetails, FirmProfile, GenerationRequest, ChatMessage,
    StageSettings, OrchestratorSettings, StageResult, PipelineRun,
    PipelineState, PipelineMode, StageName, StageStatus, RunStatus, Identity,
    OperationClass, RateLimitRule, RateLimitPolicy, RateLimitWindow,
    AdmissionOutcome, AdmissionResult, default_evidence_budget,
    default_rate_limit_policy

Exceptions:
    CasebriefError, GenerationBackendError, StageExecutionError,
    QuotaExceededError, CounterStoreError, MarkerPreservationError

Tokens:
    CharRatioEstimator, TiktokenEstimator, estimate_tokens, truncate_to_tokens
"""

from importlib.metadata import PackageNotFoundError, version

from casebrief.bootstrap import build_service
from casebrief.context import AssemblerSettings, ContextAssembler, SectionSummarizer, top_by_relevance
from casebrief.exceptions import (
    CasebriefError,
    CounterStoreError,
    GenerationBackendError,
    MarkerPreservationError,
    QuotaExceededError,
    StageExecutionError,
)
from casebrief.generation import (
    AnthropicBackend,
    AsyncAnthropicBackend,
    GenerationStage,
    SingleStageGenerator,
    StageCallback,
    StageInput,
    StageOrchestrator,
    direct_generation_stage,
    extract_markers,
    fact_extraction_stage,
    structuring_stage,
    three_stage_pipeline,
    tone_finishing_stage,
)
from casebrief.models import (
    AdmissionOutcome,
    AdmissionResult,
    AssembledContext,
    CaseDetails,
    CategoryAllocation,
    ChatMessage,
    CompactGuidance,
    ContextCategory,
    ContextSection,
    FirmProfile,
    GenerationRequest,
    Identity,
    OperationClass,
    OrchestratorSettings,
    PipelineMode,
    PipelineRun,
    PipelineState,
    PrecedentHit,
    RateLimitPolicy,
    RateLimitRule,
    RateLimitWindow,
    ReferenceHit,
    RunStatus,
    SourceDocument,
    StageName,
    StageResult,
    StageSettings,
    StageStatus,
    TokenBudget,
    default_evidence_budget,
    default_rate_limit_policy,
)
from casebrief.protocols import AsyncGenerationBackend, CounterStore, GenerationBackend, Tokenizer
from casebrief.ratelimit import (
    AdmissionGate,
    InMemoryCounterStore,
    RedisCounterStore,
    classify_operation,
    rate_limit_headers,
    resolve_identity,
)
from casebrief.service import CaseBriefService
from casebrief.tokens import CharRatioEstimator, TiktokenEstimator, estimate_tokens, truncate_to_tokens

try:
    __version__ = version("casebrief")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "AdmissionGate",
    "AdmissionOutcome",
    "AdmissionResult",
    "AnthropicBackend",
    "AssembledContext",
    "AssemblerSettings",
    "AsyncAnthropicBackend",
    "AsyncGenerationBackend",
    "CaseBriefService",
    "CaseDetails",
    "CasebriefError",
    "CategoryAllocation",
    "CharRatioEstimator",
    "ChatMessage",
    "CompactGuidance",
    "ContextAssembler",
    "ContextCategory",
    "ContextSection",
    "CounterStore",
    "CounterStoreError",
    "FirmProfile",
    "GenerationBackend",
    "GenerationBackendError",
    "GenerationRequest",
    "GenerationStage",
    "Identity",
    "InMemoryCounterStore",
    "MarkerPreservationError",
    "OperationClass",
    "OrchestratorSettings",
    "PipelineMode",
    "PipelineRun",
    "PipelineState",
    "PrecedentHit",
    "QuotaExceededError",
    "RateLimitPolicy",
    "RateLimitRule",
    "RateLimitWindow",
    "RedisCounterStore",
    "ReferenceHit",
    "RunStatus",
    "SectionSummarizer",
    "SingleStageGenerator",
    "SourceDocument",
    "StageCallback",
    "StageExecutionError",
    "StageInput",
    "StageName",
    "StageOrchestrator",
    "StageResult",
    "StageSettings",
    "StageStatus",
    "TiktokenEstimator",
    "TokenBudget",
    "Tokenizer",
    "build_service",
    "classify_operation",
    "default_evidence_budget",
    "default_rate_limit_policy",
    "direct_generation_stage",
    "estimate_tokens",
    "extract_markers",
    "fact_extraction_stage",
    "rate_limit_headers",
    "resolve_identity",
    "structuring_stage",
    "three_stage_pipeline",
    "tone_finishing_stage",
    "truncate_to_tokens",
]
