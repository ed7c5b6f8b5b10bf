"""ContextAssembler -- fits evidence into a bounded prompt body."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from casebrief.models.budget import ContextCategory, TokenBudget
from casebrief.models.budget_defaults import default_evidence_budget
from casebrief.models.context import (
    AssembledContext,
    CompactGuidance,
    CompactPrecedent,
    CompactReference,
    ContextSection,
    PrecedentHit,
    ReferenceHit,
    SourceDocument,
)
from casebrief.protocols.tokenizer import Tokenizer
from casebrief.tokens.estimator import MIN_TRUNCATION_TOKENS, get_default_estimator

from .summarizer import SectionSummarizer

logger = logging.getLogger(__name__)

DEFAULT_PREAMBLE = (
    "The material below is the complete evidence assembled for this case. "
    "Sections marked as truncated were shortened to fit the context window; "
    "rely only on what is present and do not infer missing content."
)


class AssemblerSettings(BaseModel):
    """Selection limits and per-item caps used by the assembler."""

    reference_top_n: int = Field(default=10, ge=0)
    precedent_top_m: int = Field(default=5, ge=0)
    source_text_tokens: int = 5000
    reference_item_tokens: int = 3000
    precedent_field_tokens: int = 1000
    case_context_tokens: int = 5000
    compact_reference_top_n: int = Field(default=5, ge=0)
    compact_reference_tokens: int = 1000
    compact_precedent_top_m: int = Field(default=3, ge=0)
    compact_list_items: int = Field(default=3, ge=0)
    source_separator: str = "\n\n"
    reference_separator: str = "\n\n--- NEXT GUIDANCE ---\n\n"
    precedent_separator: str = "\n\n--- NEXT PRECEDENT ---\n\n"
    preamble: str = DEFAULT_PREAMBLE
    currency_symbol: str = "£"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_caps(self) -> Self:
        caps = {
            "source_text_tokens": self.source_text_tokens,
            "reference_item_tokens": self.reference_item_tokens,
            "precedent_field_tokens": self.precedent_field_tokens,
            "case_context_tokens": self.case_context_tokens,
            "compact_reference_tokens": self.compact_reference_tokens,
        }
        for name, value in caps.items():
            if value < MIN_TRUNCATION_TOKENS:
                msg = f"{name} ({value}) must be at least {MIN_TRUNCATION_TOKENS} tokens"
                raise ValueError(msg)
        return self


_HitT = TypeVar("_HitT", ReferenceHit, PrecedentHit)


def top_by_relevance(hits: Sequence[_HitT], limit: int) -> list[_HitT]:
    """Highest-scoring hits first; ties keep their incoming order."""
    return sorted(hits, key=lambda h: h.relevance_score, reverse=True)[:limit]


class ContextAssembler:
    """Selects, renders and truncates evidence into one ``AssembledContext``.

    Usage::

        assembler = ContextAssembler(default_evidence_budget())
        context = assembler.assemble(
            case_context="Repayment claim delayed for 14 months...",
            sources=documents,
            references=reference_hits,
            precedents=precedent_hits,
        )

    Truncation happens at three levels: each item against its own cap, each
    category against its budget cap, and finally the whole body against the
    total budget.  Oversized input never raises.
    """

    __slots__ = ("_budget", "_settings", "_summarizer", "_tokenizer")

    def __init__(
        self,
        budget: TokenBudget | None = None,
        tokenizer: Tokenizer | None = None,
        settings: AssemblerSettings | None = None,
    ) -> None:
        self._budget = budget or default_evidence_budget()
        self._tokenizer = tokenizer or get_default_estimator()
        self._settings = settings or AssemblerSettings()
        self._summarizer = SectionSummarizer(
            self._tokenizer,
            source_text_tokens=self._settings.source_text_tokens,
            reference_tokens=self._settings.reference_item_tokens,
            precedent_field_tokens=self._settings.precedent_field_tokens,
            currency_symbol=self._settings.currency_symbol,
        )
        for category in (
            ContextCategory.SOURCE,
            ContextCategory.REFERENCE,
            ContextCategory.PRECEDENT,
            ContextCategory.INSTRUCTIONS,
        ):
            cap = self._budget.get_allocation(category)
            if cap < MIN_TRUNCATION_TOKENS:
                msg = f"Budget cap for '{category.value}' ({cap}) is too small to assemble context"
                raise ValueError(msg)

    @property
    def budget(self) -> TokenBudget:
        return self._budget

    @property
    def settings(self) -> AssemblerSettings:
        return self._settings

    @property
    def summarizer(self) -> SectionSummarizer:
        return self._summarizer

    def __repr__(self) -> str:
        return (
            f"ContextAssembler(total_tokens={self._budget.total_tokens}, "
            f"reference_top_n={self._settings.reference_top_n}, "
            f"precedent_top_m={self._settings.precedent_top_m})"
        )

    def _build_section(
        self,
        category: ContextCategory,
        label: str,
        rendered: list[str],
        separator: str,
        items_available: int,
    ) -> ContextSection:
        cap = self._budget.get_allocation(category)
        joined = separator.join(rendered)
        estimated_before = self._tokenizer.count_tokens(joined)
        text = self._tokenizer.truncate_to_tokens(joined, cap)
        truncated = text is not joined
        estimated = self._tokenizer.count_tokens(text) if truncated else estimated_before

        logger.info(
            "%s context: %d tokens (budget: %d)%s",
            category.value, estimated_before, cap,
            " -> truncated" if truncated else "",
        )
        return ContextSection(
            category=category,
            label=label,
            items_available=items_available,
            items_considered=len(rendered),
            text=text,
            estimated_tokens=estimated,
            cap=cap,
            truncated=truncated,
        )

    def build_case_section(self, case_context: str) -> ContextSection:
        """Case description, capped by the smaller of its own cap and the instructions budget."""
        cap = min(
            self._settings.case_context_tokens,
            self._budget.get_allocation(ContextCategory.INSTRUCTIONS),
        )
        estimated_before = self._tokenizer.count_tokens(case_context)
        text = self._tokenizer.truncate_to_tokens(case_context, cap)
        truncated = text is not case_context
        logger.info("case context: %d tokens (budget: %d)", estimated_before, cap)
        return ContextSection(
            category=ContextCategory.INSTRUCTIONS,
            label="CASE CONTEXT",
            items_available=1 if case_context else 0,
            items_considered=1 if case_context else 0,
            text=text,
            estimated_tokens=self._tokenizer.count_tokens(text),
            cap=cap,
            truncated=truncated,
        )

    def build_source_section(self, sources: Sequence[SourceDocument]) -> ContextSection:
        rendered = [self._summarizer.render_source(doc) for doc in sources]
        return self._build_section(
            ContextCategory.SOURCE,
            f"ALL DOCUMENTS ({len(sources)} total)",
            rendered,
            self._settings.source_separator,
            len(sources),
        )

    def build_reference_section(self, references: Sequence[ReferenceHit]) -> ContextSection:
        top_n = self._settings.reference_top_n
        selected = top_by_relevance(references, top_n)
        rendered = [self._summarizer.render_reference(hit) for hit in selected]
        return self._build_section(
            ContextCategory.REFERENCE,
            f"RELEVANT GUIDANCE ({len(references)} results, showing top {top_n})",
            rendered,
            self._settings.reference_separator,
            len(references),
        )

    def build_precedent_section(self, precedents: Sequence[PrecedentHit]) -> ContextSection:
        top_m = self._settings.precedent_top_m
        selected = top_by_relevance(precedents, top_m)
        rendered = [self._summarizer.render_precedent(hit) for hit in selected]
        return self._build_section(
            ContextCategory.PRECEDENT,
            f"SIMILAR PRECEDENT CASES ({len(precedents)} results, showing top {top_m})",
            rendered,
            self._settings.precedent_separator,
            len(precedents),
        )

    def assemble(
        self,
        case_context: str = "",
        sources: Sequence[SourceDocument] = (),
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
    ) -> AssembledContext:
        """Assemble every category into one bounded prompt body.

        The returned context's estimated size never exceeds
        ``budget.total_tokens``: if the per-category caps were not enough,
        a whole-body truncation is applied as a final backstop.
        """
        sections = (
            self.build_case_section(case_context),
            self.build_source_section(sources),
            self.build_reference_section(references),
            self.build_precedent_section(precedents),
        )
        preamble = self._settings.preamble.strip()
        blocks = [preamble] if preamble else []
        blocks.extend(f"{section.label}:\n{section.text}" for section in sections)
        body = "\n\n".join(blocks).strip()

        total = self._budget.total_tokens
        estimated = self._tokenizer.count_tokens(body)
        logger.info(
            "Final context: %d tokens (%d%% of budget)",
            estimated, round(estimated / total * 100),
        )

        final_truncation = False
        if estimated > total:
            logger.warning(
                "Context still exceeds budget (%d > %d tokens); applying final truncation",
                estimated, total,
            )
            body = self._tokenizer.truncate_to_tokens(body, total)
            estimated = self._tokenizer.count_tokens(body)
            final_truncation = True

        return AssembledContext(
            preamble=preamble,
            sections=sections,
            text=body,
            estimated_tokens=estimated,
            total_budget=total,
            final_truncation_applied=final_truncation,
        )

    def compact_guidance(
        self,
        references: Sequence[ReferenceHit] = (),
        precedents: Sequence[PrecedentHit] = (),
    ) -> CompactGuidance:
        """Reduce references and precedents to the essentials for generation prompts."""
        s = self._settings
        guidance = [
            CompactReference(
                category=hit.category,
                title=hit.title,
                key_points=self._tokenizer.truncate_to_tokens(hit.content, s.compact_reference_tokens),
            )
            for hit in top_by_relevance(references, s.compact_reference_top_n)
        ]
        compact_precedents = [
            CompactPrecedent(
                title=hit.title,
                outcome=hit.outcome,
                compensation_amount=hit.compensation_amount,
                key_arguments=hit.key_arguments[: s.compact_list_items],
                citations=hit.citations[: s.compact_list_items],
            )
            for hit in top_by_relevance(precedents, s.compact_precedent_top_m)
        ]
        return CompactGuidance(guidance=guidance, precedents=compact_precedents)
