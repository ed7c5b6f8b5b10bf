"""Token budget allocation models."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_BACKEND_LIMIT = 200_000
"""Hard context limit of the generation backend, in tokens."""


class ContextCategory(StrEnum):
    """The categories a prompt budget is partitioned into."""

    SOURCE = "source"
    REFERENCE = "reference"
    PRECEDENT = "precedent"
    INSTRUCTIONS = "instructions"
    OUTPUT = "output"


class CategoryAllocation(BaseModel):
    """Token allocation for a single context category."""

    category: ContextCategory
    max_tokens: int = Field(gt=0)

    model_config = ConfigDict(frozen=True)


class TokenBudget(BaseModel):
    """Fixed total capacity partitioned into per-category caps.

    Caps are configuration: the model is frozen so a budget cannot change
    while a request is being assembled.  The total is kept below the
    backend's hard limit; the difference is reported as ``headroom_tokens``.
    Unallocated tokens form a shared pool.
    """

    total_tokens: int = Field(gt=0)
    allocations: tuple[CategoryAllocation, ...] = ()
    backend_limit: int = Field(default=DEFAULT_BACKEND_LIMIT, gt=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_allocations(self) -> Self:
        seen: set[ContextCategory] = set()
        for alloc in self.allocations:
            if alloc.category in seen:
                msg = f"Duplicate allocation for category '{alloc.category.value}'"
                raise ValueError(msg)
            seen.add(alloc.category)
        allocated = sum(a.max_tokens for a in self.allocations)
        if allocated > self.total_tokens:
            msg = f"Allocated tokens ({allocated}) exceed total budget ({self.total_tokens})"
            raise ValueError(msg)
        if self.total_tokens > self.backend_limit:
            msg = (
                f"Total budget ({self.total_tokens}) exceeds the backend context "
                f"limit ({self.backend_limit})"
            )
            raise ValueError(msg)
        return self

    @property
    def allocated_tokens(self) -> int:
        """Sum of all category caps."""
        return sum(a.max_tokens for a in self.allocations)

    @property
    def shared_pool(self) -> int:
        """Tokens not explicitly allocated to any category."""
        return self.total_tokens - self.allocated_tokens

    @property
    def headroom_tokens(self) -> int:
        """Safety margin between the total budget and the backend limit."""
        return self.backend_limit - self.total_tokens

    def get_allocation(self, category: ContextCategory) -> int:
        """Get the cap for a category. Falls back to the shared pool."""
        for alloc in self.allocations:
            if alloc.category == category:
                return alloc.max_tokens
        return self.shared_pool

    def ratio(self, category: ContextCategory) -> float:
        """Fraction of the total budget given to a category."""
        return self.get_allocation(category) / self.total_tokens

    def as_dict(self) -> dict[str, int]:
        """Category caps keyed by category name, plus the total."""
        caps = {alloc.category.value: alloc.max_tokens for alloc in self.allocations}
        caps["total"] = self.total_tokens
        return caps
