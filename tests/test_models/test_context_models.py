"""Tests for casebrief.models.context."""

from __future__ import annotations

from casebrief.context.summarizer import SectionSummarizer
from casebrief.models.budget import ContextCategory
from casebrief.models.context import AssembledContext, CompactGuidance, ContextSection, SourceDocument


class TestSourceDocument:
    def test_flattens_processed_data(self) -> None:
        doc = SourceDocument.model_validate(
            {
                "filename": "a.pdf",
                "processed_data": {"dates": ["2024-01-01"], "text": "body", "issues": ["late"]},
            },
        )
        assert doc.filename == "a.pdf"
        assert doc.dates == ["2024-01-01"]
        assert doc.text == "body"

    def test_missing_filename_defaults(self) -> None:
        doc = SourceDocument.model_validate({"filename": None, "processed_data": {"text": "x"}})
        assert doc.filename == "Unknown"

    def test_structured_entries_rendered(self) -> None:
        doc = SourceDocument.model_validate(
            {
                "filename": "hmrc.pdf",
                "processed_data": {
                    "dates": [{"date": "16 February 2024", "context": "Initial claim"}],
                    "amounts": [{"amount": "£34,000", "context": "Relief claimed"}],
                    "references": [{"type": "HMRC Ref", "value": "0000/ABC"}],
                    "issues": ["Unreasonable delay"],
                    "summary": "Claim lost twice",
                },
            },
        )
        assert doc.dates == ["16 February 2024 (Initial claim)"]
        assert doc.amounts == ["£34,000 (Relief claimed)"]
        assert doc.references == ["HMRC Ref: 0000/ABC"]
        assert doc.issues == ["Unreasonable delay"]

    def test_entries_without_context(self) -> None:
        doc = SourceDocument(dates=[{"date": "1 March 2024"}], references=[{"value": "XY-1"}, "", None])
        assert doc.dates == ["1 March 2024"]
        assert doc.references == ["XY-1"]

    def test_none_fields_are_empty(self) -> None:
        doc = SourceDocument.model_validate(
            {"filename": "a.pdf", "processed_data": {"dates": None, "amounts": None, "text": None}},
        )
        assert doc.dates == []
        assert doc.amounts == []
        assert doc.text == ""

    def test_structured_source_reaches_summary(self) -> None:
        doc = SourceDocument(references=[{"type": "HMRC Ref", "value": "0000/ABC"}], text="body")
        summary = SectionSummarizer().summarize(doc)
        assert "HMRC Ref: 0000/ABC" in summary


class TestAssembledContext:
    def _section(self, truncated: bool) -> ContextSection:
        return ContextSection(
            category=ContextCategory.SOURCE,
            label="DOCS",
            items_available=2,
            items_considered=2,
            text="t",
            estimated_tokens=50,
            cap=100,
            truncated=truncated,
        )

    def test_utilization_and_truncated_categories(self) -> None:
        ctx = AssembledContext(
            preamble="",
            sections=(self._section(True),),
            text="body",
            estimated_tokens=250,
            total_budget=1000,
        )
        assert ctx.utilization == 0.25
        assert ctx.truncated_categories == ["source"]
        assert ctx.section(ContextCategory.SOURCE) is not None
        assert ctx.section(ContextCategory.PRECEDENT) is None
        assert str(ctx) == "body"

    def test_section_utilization(self) -> None:
        assert self._section(False).utilization == 0.5


def test_empty_guidance() -> None:
    assert CompactGuidance().is_empty
