"""Evidence and assembled-context models for casebrief."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .budget import ContextCategory

_VALUE_KEYS = ("date", "amount", "value", "description", "text")


def _describe(entry: Any) -> str:
    """Render one extracted entry, e.g. ``{"type": "HMRC Ref", "value": "0000/ABC"}``."""
    if not isinstance(entry, dict):
        return str(entry).strip()
    value = next((str(entry[k]).strip() for k in _VALUE_KEYS if entry.get(k) not in (None, "")), "")
    label = str(entry.get("type") or "").strip()
    text = f"{label}: {value}" if label and value else value or label
    context = str(entry.get("context") or "").strip()
    if context:
        return f"{text} ({context})" if text else context
    return text


class SourceDocument(BaseModel):
    """A raw source item with the structured fields extracted from it.

    Accepts either flat fields or the ``{"filename": ..., "processed_data":
    {...}}`` shape produced by document processing.  Extracted entries may be
    plain strings or objects such as ``{"date": ..., "context": ...}`` and
    ``{"type": ..., "value": ...}``; objects are rendered to one line each.
    ``None`` stands for an empty field.
    """

    filename: str = "Unknown"
    dates: list[str] = Field(default_factory=list)
    amounts: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    text: str = ""

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_processed_data(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = {k: v for k, v in data.items() if k != "processed_data"}
        processed = data.get("processed_data")
        if isinstance(processed, dict):
            for key, value in processed.items():
                flat.setdefault(key, value)
        if flat.get("filename") is None:
            flat.pop("filename", None)
        return flat

    @field_validator("dates", "amounts", "references", "issues", mode="before")
    @classmethod
    def _describe_entries(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list | tuple):
            rendered = (_describe(entry) for entry in value if entry is not None)
            return [text for text in rendered if text]
        return value

    @field_validator("text", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ReferenceHit(BaseModel):
    """A retrieved reference passage (guidance, manual section, statute)."""

    title: str
    category: str = ""
    content: str = ""
    relevance_score: float = 0.0

    model_config = ConfigDict(frozen=True)


class PrecedentHit(BaseModel):
    """A retrieved precedent case with its outcome details."""

    title: str
    category: str = ""
    content: str = ""
    relevance_score: float = 0.0
    outcome: str | None = None
    resolution_time_days: int | None = None
    compensation_amount: float | None = None
    key_arguments: list[str] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ContextSection(BaseModel):
    """One category's assembled text. Created once by the assembler."""

    category: ContextCategory
    label: str
    items_available: int = Field(ge=0)
    items_considered: int = Field(ge=0)
    text: str
    estimated_tokens: int = Field(ge=0)
    cap: int = Field(gt=0)
    truncated: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def utilization(self) -> float:
        """Fraction of the category cap used (0.0 to 1.0)."""
        return min(1.0, self.estimated_tokens / self.cap)


class AssembledContext(BaseModel):
    """The final bounded prompt body: preamble plus ordered sections."""

    preamble: str
    sections: tuple[ContextSection, ...] = ()
    text: str
    estimated_tokens: int = Field(ge=0)
    total_budget: int = Field(gt=0)
    final_truncation_applied: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def utilization(self) -> float:
        """Fraction of the total budget used (0.0 to 1.0)."""
        return min(1.0, self.estimated_tokens / self.total_budget)

    @property
    def truncated_categories(self) -> list[str]:
        """Names of the categories whose text was cut to fit their cap."""
        return [s.category.value for s in self.sections if s.truncated]

    def section(self, category: ContextCategory) -> ContextSection | None:
        """Return the section for a category, if one was assembled."""
        for section in self.sections:
            if section.category == category:
                return section
        return None

    def __str__(self) -> str:
        return self.text


class CompactReference(BaseModel):
    """Reduced reference entry used as guidance for fact extraction."""

    category: str
    title: str
    key_points: str


class CompactPrecedent(BaseModel):
    """Reduced precedent entry used as guidance for fact extraction."""

    title: str
    outcome: str | None = None
    compensation_amount: float | None = None
    key_arguments: list[str] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)


class CompactGuidance(BaseModel):
    """Compact reference and precedent material for generation prompts."""

    guidance: list[CompactReference] = Field(default_factory=list)
    precedents: list[CompactPrecedent] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.guidance and not self.precedents
