"""Compact renderings of source documents, reference hits and precedents."""

from __future__ import annotations

from casebrief.models.context import PrecedentHit, ReferenceHit, SourceDocument
from casebrief.protocols.tokenizer import Tokenizer
from casebrief.tokens.estimator import get_default_estimator

DEFAULT_SOURCE_TEXT_TOKENS = 5000
DEFAULT_REFERENCE_TOKENS = 3000
DEFAULT_PRECEDENT_FIELD_TOKENS = 1000

_SOURCE_FIELD_LABELS: tuple[tuple[str, str], ...] = (
    ("dates", "KEY DATES"),
    ("amounts", "AMOUNTS"),
    ("references", "REFERENCES"),
    ("issues", "ISSUES IDENTIFIED"),
)


def _format_amount(amount: float, currency_symbol: str) -> str:
    if float(amount).is_integer():
        return f"{currency_symbol}{int(amount):,}"
    return f"{currency_symbol}{amount:,.2f}"


class SectionSummarizer:
    """Renders raw evidence items into compact, individually capped text blocks.

    Structured fields come first under their own labels; the raw text comes
    last and is the only part cut to the per-item cap.  Empty fields are
    left out entirely.

    Parameters:
        tokenizer: Token estimator used for the per-item caps.
        source_text_tokens: Cap for a source document's raw text.
        reference_tokens: Cap for a single reference hit's content.
        precedent_field_tokens: Cap for each free-text field of a precedent.
        currency_symbol: Prefix used when rendering monetary amounts.
    """

    __slots__ = (
        "_currency_symbol",
        "_precedent_field_tokens",
        "_reference_tokens",
        "_source_text_tokens",
        "_tokenizer",
    )

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        *,
        source_text_tokens: int = DEFAULT_SOURCE_TEXT_TOKENS,
        reference_tokens: int = DEFAULT_REFERENCE_TOKENS,
        precedent_field_tokens: int = DEFAULT_PRECEDENT_FIELD_TOKENS,
        currency_symbol: str = "£",
    ) -> None:
        self._tokenizer = tokenizer or get_default_estimator()
        self._source_text_tokens = source_text_tokens
        self._reference_tokens = reference_tokens
        self._precedent_field_tokens = precedent_field_tokens
        self._currency_symbol = currency_symbol

    def summarize(self, document: SourceDocument) -> str:
        """Render a source document's structured fields followed by its raw text."""
        blocks: list[str] = []
        for field_name, label in _SOURCE_FIELD_LABELS:
            values = [v for v in getattr(document, field_name) if v and v.strip()]
            if values:
                blocks.append(f"{label}:\n" + "\n".join(values))

        if document.text.strip():
            text = self._tokenizer.truncate_to_tokens(document.text, self._source_text_tokens)
            blocks.append(f"DOCUMENT TEXT:\n{text}")

        return "\n\n".join(blocks)

    def render_source(self, document: SourceDocument) -> str:
        """Summary of a source document under a header naming its file."""
        return f"--- DOCUMENT: {document.filename or 'Unknown'} ---\n{self.summarize(document)}"

    def render_reference(self, hit: ReferenceHit) -> str:
        content = self._tokenizer.truncate_to_tokens(hit.content, self._reference_tokens)
        heading = f"[{hit.category}] {hit.title}" if hit.category else hit.title
        return f"{heading}:\n{content}"

    def render_precedent(self, hit: PrecedentHit) -> str:
        heading = f"PRECEDENT: {hit.title}"
        if hit.category:
            heading = f"{heading} - {hit.category}"
        lines = [heading]
        if hit.outcome:
            lines.append(f"Outcome: {self._cap(hit.outcome)}")
        if hit.resolution_time_days is not None:
            lines.append(f"Resolution Time: {hit.resolution_time_days} days")
        if hit.compensation_amount is not None:
            lines.append(f"Compensation: {_format_amount(hit.compensation_amount, self._currency_symbol)}")
        if hit.key_arguments:
            lines.append(f"Key Arguments: {self._cap('; '.join(hit.key_arguments))}")
        if hit.citations:
            lines.append(f"Citations: {self._cap('; '.join(hit.citations))}")
        if hit.content.strip():
            lines.append(f"Summary: {self._cap(hit.content)}")
        return "\n".join(lines)

    def _cap(self, text: str) -> str:
        return self._tokenizer.truncate_to_tokens(text, self._precedent_field_tokens)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(source_text_tokens={self._source_text_tokens}, "
            f"reference_tokens={self._reference_tokens}, "
            f"precedent_field_tokens={self._precedent_field_tokens})"
        )
