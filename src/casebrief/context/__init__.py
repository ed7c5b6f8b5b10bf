"""Context budgeting: per-item summaries and bounded prompt assembly."""

from .assembler import DEFAULT_PREAMBLE, AssemblerSettings, ContextAssembler, top_by_relevance
from .summarizer import SectionSummarizer

__all__ = [
    "DEFAULT_PREAMBLE",
    "AssemblerSettings",
    "ContextAssembler",
    "SectionSummarizer",
    "top_by_relevance",
]
