"""Custom exceptions for casebrief."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from casebrief.models.pipeline import PipelineRun
    from casebrief.models.rate_limit import AdmissionResult, RateLimitHeaders

__all__ = [
    "CasebriefError",
    "CounterStoreError",
    "GenerationBackendError",
    "MarkerPreservationError",
    "QuotaExceededError",
    "StageExecutionError",
]


class CasebriefError(Exception):
    """Base exception for all casebrief errors."""


class GenerationBackendError(CasebriefError):
    """Raised when the generation backend fails to return text."""


class MarkerPreservationError(CasebriefError):
    """Raised when tone finishing drops structural markers from the draft."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class CounterStoreError(CasebriefError):
    """Raised when the shared rate-limit counter store cannot be reached."""


class StageExecutionError(CasebriefError):
    """A generation stage failed; earlier stage outputs are kept for diagnostics."""

    def __init__(
        self,
        stage_name: str,
        step: int,
        total_steps: int,
        *,
        reason: str = "",
        partial_outputs: dict[str, str] | None = None,
        run: PipelineRun | None = None,
    ) -> None:
        msg = f"Could not complete step {step} of {total_steps} ({stage_name})"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.stage_name = stage_name
        self.step = step
        self.total_steps = total_steps
        self.partial_outputs = partial_outputs or {}
        self.run = run

    @property
    def diagnostics(self) -> dict[str, Any]:
        return {
            "failed_stage": self.stage_name,
            "step": self.step,
            "total_steps": self.total_steps,
            "completed_stages": list(self.partial_outputs),
        }


class QuotaExceededError(CasebriefError):
    """Raised when an identity has no quota left for an operation class."""

    def __init__(self, result: AdmissionResult) -> None:
        reset = result.reset_time.isoformat()
        msg = (
            f"Rate limit exceeded for {result.operation_class.value} requests; "
            f"try again after {reset}"
        )
        super().__init__(msg)
        self.result = result

    @property
    def headers(self) -> RateLimitHeaders:
        """Rate limit headers to attach to the rejection response."""
        return self.result.headers()
