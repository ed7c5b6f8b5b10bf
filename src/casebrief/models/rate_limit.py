"""Admission control models: identities, rules, windows and outcomes."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import TypedDict

UNKNOWN_IDENTITY = "unknown"

RateLimitHeaders = TypedDict(
    "RateLimitHeaders",
    {"X-RateLimit-Limit": str, "X-RateLimit-Remaining": str, "X-RateLimit-Reset": str},
)


class OperationClass(StrEnum):
    """Classes of operation that carry separate quotas."""

    GENERAL = "general"
    GENERATION = "generation"
    ANALYSIS = "analysis"
    UPLOAD = "upload"
    UNAUTHENTICATED = "unauthenticated"


class Identity(BaseModel):
    """The resolved key a request is rate limited under."""

    kind: Literal["user", "ip"]
    value: str

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.value}"

    @property
    def is_authenticated(self) -> bool:
        return self.kind == "user"

    def __str__(self) -> str:
        return self.key


class RateLimitRule(BaseModel):
    """Sliding-window limit: at most ``limit`` requests per ``window_seconds``."""

    limit: int = Field(gt=0)
    window_seconds: float = Field(gt=0)
    prefix: str

    model_config = ConfigDict(frozen=True)


class RateLimitPolicy(BaseModel):
    """Rules for every operation class."""

    rules: Mapping[OperationClass, RateLimitRule]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_rules(self) -> Self:
        missing = [op.value for op in OperationClass if op not in self.rules]
        if missing:
            msg = f"Rate limit policy is missing rules for: {', '.join(missing)}"
            raise ValueError(msg)
        prefixes = [rule.prefix for rule in self.rules.values()]
        if len(set(prefixes)) != len(prefixes):
            msg = "Rate limit rule prefixes must be unique"
            raise ValueError(msg)
        return self

    def rule_for(self, operation_class: OperationClass) -> RateLimitRule:
        return self.rules[operation_class]

    def with_rule(self, operation_class: OperationClass, rule: RateLimitRule) -> RateLimitPolicy:
        """Return a copy with one rule replaced."""
        rules = dict(self.rules)
        rules[operation_class] = rule
        return RateLimitPolicy(rules=rules)


def default_rate_limit_policy() -> RateLimitPolicy:
    """Default quotas per identity.

    - General API traffic: 60 per minute
    - Artifact generation: 10 per hour
    - Analysis: 20 per hour
    - Uploads: 30 per hour
    - Unauthenticated traffic, by network address: 100 per minute
    """
    return RateLimitPolicy(
        rules={
            OperationClass.GENERAL: RateLimitRule(limit=60, window_seconds=60, prefix="ratelimit:general"),
            OperationClass.GENERATION: RateLimitRule(limit=10, window_seconds=3600, prefix="ratelimit:letters"),
            OperationClass.ANALYSIS: RateLimitRule(limit=20, window_seconds=3600, prefix="ratelimit:analysis"),
            OperationClass.UPLOAD: RateLimitRule(limit=30, window_seconds=3600, prefix="ratelimit:uploads"),
            OperationClass.UNAUTHENTICATED: RateLimitRule(limit=100, window_seconds=60, prefix="ratelimit:ip"),
        },
    )


class RateLimitWindow(BaseModel):
    """State of one sliding window after an admission check."""

    key: str
    window_start: datetime
    count: int = Field(ge=0)
    limit: int = Field(gt=0)
    reset_time: datetime
    admitted: bool

    model_config = ConfigDict(frozen=True)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class AdmissionOutcome(StrEnum):
    """Result of an admission check.

    ``DEGRADED`` means the counter store was unavailable and the request
    was let through without enforcement.
    """

    ALLOWED = "allowed"
    REJECTED = "rejected"
    DEGRADED = "degraded"


class AdmissionResult(BaseModel):
    """Answer of the admission gate for one (identity, operation class) pair."""

    outcome: AdmissionOutcome
    operation_class: OperationClass
    identity: str
    limit: int = Field(ge=0)
    remaining: int = Field(ge=0)
    reset_time: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def allowed(self) -> bool:
        return self.outcome != AdmissionOutcome.REJECTED

    @property
    def degraded(self) -> bool:
        return self.outcome == AdmissionOutcome.DEGRADED

    def headers(self) -> RateLimitHeaders:
        """HTTP response headers describing the quota state."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_time.isoformat(),
        }
