"""Token estimation utilities."""

from .estimator import (
    CHARS_PER_TOKEN,
    MIN_TRUNCATION_TOKENS,
    TRUNCATION_MARKER,
    CharRatioEstimator,
    TiktokenEstimator,
    estimate_tokens,
    get_default_estimator,
    is_truncated,
    truncate_to_tokens,
)

__all__ = [
    "CHARS_PER_TOKEN",
    "MIN_TRUNCATION_TOKENS",
    "TRUNCATION_MARKER",
    "CharRatioEstimator",
    "TiktokenEstimator",
    "estimate_tokens",
    "get_default_estimator",
    "is_truncated",
    "truncate_to_tokens",
]
