"""Factory functions for common TokenBudget configurations.

The ratios can be customised by passing ``ratios`` or by constructing a
``TokenBudget`` directly.
"""

from __future__ import annotations

from collections.abc import Mapping
from fractions import Fraction

from .budget import DEFAULT_BACKEND_LIMIT, CategoryAllocation, ContextCategory, TokenBudget

DEFAULT_TOTAL_TOKENS = 150_000

DEFAULT_RATIOS: Mapping[ContextCategory, Fraction] = {
    ContextCategory.SOURCE: Fraction(6, 15),
    ContextCategory.REFERENCE: Fraction(4, 15),
    ContextCategory.PRECEDENT: Fraction(2, 15),
    ContextCategory.INSTRUCTIONS: Fraction(2, 15),
    ContextCategory.OUTPUT: Fraction(1, 15),
}


def _as_fraction(ratio: float | Fraction) -> Fraction:
    # str() round-trip so 0.4 becomes 2/5 rather than its binary expansion
    if isinstance(ratio, Fraction):
        return ratio
    return Fraction(str(ratio))


def default_evidence_budget(
    total_tokens: int = DEFAULT_TOTAL_TOKENS,
    backend_limit: int = DEFAULT_BACKEND_LIMIT,
    ratios: Mapping[ContextCategory, float | Fraction] | None = None,
) -> TokenBudget:
    """Budget for evidence-heavy generation requests.

    Allocation breakdown:
        - Source material: 40%
        - Reference material: ~27%
        - Precedent material: ~13%
        - Fixed instructions: ~13%
        - Reserved output: ~7%

    The default total of 150,000 tokens sits deliberately below the
    backend's 200,000-token limit.

    Parameters:
        total_tokens: Total token budget for the prompt window.
        backend_limit: Hard context limit of the generation backend.
        ratios: Optional override of the per-category fractions.  Their
            sum must not exceed 1.0.

    Returns:
        A ``TokenBudget`` instance.
    """
    if total_tokens <= 0:
        msg = "total_tokens must be a positive integer"
        raise ValueError(msg)

    source = ratios if ratios is not None else DEFAULT_RATIOS
    effective = {category: _as_fraction(ratio) for category, ratio in source.items()}
    if any(ratio < 0 for ratio in effective.values()):
        msg = "Category ratios must not be negative"
        raise ValueError(msg)
    if sum(effective.values()) > 1:
        msg = "Category ratios must not sum to more than 1.0"
        raise ValueError(msg)

    allocations: list[CategoryAllocation] = []
    for category, ratio in effective.items():
        cap = int(total_tokens * ratio)
        if cap > 0:
            allocations.append(CategoryAllocation(category=category, max_tokens=cap))

    return TokenBudget(
        total_tokens=total_tokens,
        backend_limit=backend_limit,
        allocations=tuple(allocations),
    )
