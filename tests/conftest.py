"""Shared fixtures for casebrief tests."""

from __future__ import annotations

import pytest

from casebrief.exceptions import CounterStoreError, GenerationBackendError
from casebrief.models.context import PrecedentHit, ReferenceHit, SourceDocument
from casebrief.models.pipeline import CaseDetails, FirmProfile, GenerationRequest
from casebrief.models.rate_limit import RateLimitWindow

DRAFT_WITH_MARKERS = (
    "**Summary of Complaint**\n\nThe repayment was delayed.\n\n"
    "**Timeline of Events**\n\nThe claim was lodged in March.\n\n"
    "**Remedy Sought**\n\nCompensation for the delay."
)


class FakeTokenizer:
    """A simple tokenizer that splits on whitespace for testing.

    Satisfies the Tokenizer protocol and keeps the truncation marker
    contract of the real estimators.
    """

    MARKER = " [truncated]"

    def count_tokens(self, text: str) -> int:
        """Count tokens by splitting on whitespace."""
        if not text or not text.strip():
            return 0
        return len(text.split())

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """Keep the first ``max_tokens - 1`` words and append a one-word marker."""
        words = text.split()
        if len(words) <= max_tokens:
            return text
        return " ".join(words[: max_tokens - 1]) + self.MARKER


class FakeBackend:
    """Records every request and answers from a scripted list of outputs.

    Each entry of ``outputs`` is returned in turn; an ``Exception`` entry is
    raised instead.  When the script runs out, the last user message is
    echoed back with a prefix.
    """

    def __init__(self, outputs: list[str | Exception] | None = None) -> None:
        self._outputs = list(outputs or [])
        self.requests: list[GenerationRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _next(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self._outputs:
            out = self._outputs.pop(0)
            if isinstance(out, Exception):
                raise out
            return out
        return f"output for: {request.conversation[-1].content[:40]}"

    def generate(self, request: GenerationRequest) -> str:
        return self._next(request)


class FakeAsyncBackend(FakeBackend):
    """Async variant of FakeBackend."""

    async def generate(self, request: GenerationRequest) -> str:  # type: ignore[override]
        return self._next(request)


class FailingCounterStore:
    """Counter store whose every call fails as an unreachable store would."""

    def __init__(self, exc: Exception | None = None) -> None:
        self._exc = exc or CounterStoreError("connection refused")
        self.calls = 0

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        self.calls += 1
        raise self._exc

    def peek(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        raise self._exc

    def reset(self, pattern: str) -> int:
        raise self._exc


class FixedClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def backend_error(message: str = "upstream timed out") -> GenerationBackendError:
    return GenerationBackendError(message)


def make_references(count: int) -> list[ReferenceHit]:
    """Reference hits with distinct, shuffled relevance scores."""
    return [
        ReferenceHit(
            title=f"Guidance {i}",
            category="manual",
            content=f"Paragraph {i} of the published guidance.",
            relevance_score=((i * 7) % count) / count,
        )
        for i in range(count)
    ]


def make_precedents(count: int) -> list[PrecedentHit]:
    return [
        PrecedentHit(
            title=f"Precedent {i}",
            category="delay",
            content=f"Summary of precedent {i}.",
            relevance_score=((i * 3) % count) / count,
            outcome="Upheld",
            resolution_time_days=30 + i,
            compensation_amount=250.0 * (i + 1),
            key_arguments=[f"argument {i}.{j}" for j in range(5)],
            citations=[f"citation {i}.{j}" for j in range(5)],
        )
        for i in range(count)
    ]


@pytest.fixture
def case() -> CaseDetails:
    return CaseDetails(
        analysis={"summary": "Repayment delayed for 14 months", "strength": "strong"},
        case_reference="CB-2024-0042",
        department="Repayments",
    )


@pytest.fixture
def firm() -> FirmProfile:
    return FirmProfile(
        practice_name="Harbour & Co",
        billing_rate=185.0,
        preparer_name="A. Morgan",
        preparer_title="Senior Adviser",
        email="a.morgan@harbour.example",
    )


@pytest.fixture
def sources() -> list[SourceDocument]:
    return [
        SourceDocument(
            filename="letter.pdf",
            dates=["2024-03-01"],
            amounts=["£1,200"],
            references=["REF-123"],
            issues=["Delay in repayment"],
            text="The claim was lodged on 1 March and has not been resolved.",
        ),
        SourceDocument.model_validate(
            {
                "filename": "statement.pdf",
                "processed_data": {"text": "Statement of account.", "dates": ["2024-04-02"]},
            },
        ),
    ]


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()
