"""Core data models for casebrief."""

from .budget import DEFAULT_BACKEND_LIMIT, CategoryAllocation, ContextCategory, TokenBudget
from .budget_defaults import DEFAULT_RATIOS, DEFAULT_TOTAL_TOKENS, default_evidence_budget
from .context import (
    AssembledContext,
    CompactGuidance,
    CompactPrecedent,
    CompactReference,
    ContextSection,
    PrecedentHit,
    ReferenceHit,
    SourceDocument,
)
from .pipeline import (
    CaseDetails,
    ChatMessage,
    FirmProfile,
    GenerationRequest,
    MarkerPolicy,
    OrchestratorSettings,
    PipelineMode,
    PipelineRun,
    PipelineState,
    Role,
    RunStatus,
    StageName,
    StageResult,
    StageSettings,
    StageStatus,
)
from .rate_limit import (
    UNKNOWN_IDENTITY,
    AdmissionOutcome,
    AdmissionResult,
    Identity,
    OperationClass,
    RateLimitHeaders,
    RateLimitPolicy,
    RateLimitRule,
    RateLimitWindow,
    default_rate_limit_policy,
)

__all__ = [
    "DEFAULT_BACKEND_LIMIT",
    "DEFAULT_RATIOS",
    "DEFAULT_TOTAL_TOKENS",
    "UNKNOWN_IDENTITY",
    "AdmissionOutcome",
    "AdmissionResult",
    "AssembledContext",
    "CaseDetails",
    "CategoryAllocation",
    "ChatMessage",
    "CompactGuidance",
    "CompactPrecedent",
    "CompactReference",
    "ContextCategory",
    "ContextSection",
    "FirmProfile",
    "GenerationRequest",
    "Identity",
    "MarkerPolicy",
    "OperationClass",
    "OrchestratorSettings",
    "PipelineMode",
    "PipelineRun",
    "PipelineState",
    "PrecedentHit",
    "RateLimitHeaders",
    "RateLimitPolicy",
    "RateLimitRule",
    "RateLimitWindow",
    "ReferenceHit",
    "Role",
    "RunStatus",
    "SourceDocument",
    "StageName",
    "StageResult",
    "StageSettings",
    "StageStatus",
    "TokenBudget",
    "default_evidence_budget",
    "default_rate_limit_policy",
]
