"""Tests for casebrief.generation.stages."""

from __future__ import annotations

import dataclasses

import pytest

from casebrief.generation.stages import (
    GenerationStage,
    StageInput,
    direct_generation_stage,
    extract_markers,
    fact_extraction_stage,
    missing_markers,
    structuring_stage,
    three_stage_pipeline,
    tone_finishing_stage,
)
from casebrief.models.context import CompactGuidance, CompactReference
from casebrief.models.pipeline import CaseDetails, FirmProfile, StageName, StageSettings, StageStatus
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend
from tests.conftest import DRAFT_WITH_MARKERS, FakeAsyncBackend, FakeBackend, backend_error

SETTINGS = StageSettings(model="test-model", temperature=0.2, max_output_tokens=100)


def _payload(case: CaseDetails, firm: FirmProfile, previous: str | None = None) -> StageInput:
    return StageInput(case=case, firm=firm, evidence="EVIDENCE BODY", previous_output=previous)


class TestMarkers:
    def test_extract_in_order_without_duplicates(self) -> None:
        text = "**A** then **B** and **A** again"
        assert extract_markers(text) == ["**A**", "**B**"]

    def test_markers_do_not_span_lines(self) -> None:
        assert extract_markers("**open\nclose**") == []

    def test_missing_markers(self) -> None:
        assert missing_markers("**A** **B**", "**A** only") == ["**B**"]
        assert missing_markers(DRAFT_WITH_MARKERS, DRAFT_WITH_MARKERS) == []


class TestStageDefinitions:
    def test_three_stage_order_and_checkpoints(self) -> None:
        stages = three_stage_pipeline()
        assert [s.name for s in stages] == [
            StageName.FACT_EXTRACTION,
            StageName.STRUCTURING,
            StageName.TONE_FINISHING,
        ]
        assert [s.percent for s in stages] == [33, 66, 100]
        assert [s.input_ref for s in stages] == ["analysis", "fact_extraction", "structuring"]

    def test_only_tone_finishing_preserves_markers(self) -> None:
        assert [s.preserve_markers for s in three_stage_pipeline()] == [False, False, True]

    def test_direct_generation(self) -> None:
        stage = direct_generation_stage()
        assert stage.percent == 100
        assert stage.name == StageName.DIRECT_GENERATION

    def test_stage_fields(self) -> None:
        names = {f.name for f in dataclasses.fields(GenerationStage)}
        assert names == {"name", "build_request", "percent", "message", "input_ref", "preserve_markers"}

    def test_fakes_satisfy_backend_protocols(self) -> None:
        assert isinstance(FakeBackend(), GenerationBackend)
        assert isinstance(FakeAsyncBackend(), AsyncGenerationBackend)


class TestExecute:
    def test_success(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend(["fact sheet"])
        result = fact_extraction_stage().execute(backend, _payload(case, firm), SETTINGS, 1)
        assert result.status == StageStatus.SUCCEEDED
        assert result.output == "fact sheet"
        assert result.model == "test-model"
        assert result.step == 1

    def test_request_shape(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend(["x"])
        fact_extraction_stage().execute(backend, _payload(case, firm), SETTINGS, 1)
        request = backend.requests[0]
        assert request.model == "test-model"
        assert request.temperature == 0.2
        assert request.max_output_tokens == 100
        assert [m.role for m in request.messages] == ["system", "user"]
        assert "CB-2024-0042" in request.messages[1].content
        assert "EVIDENCE BODY" in request.messages[1].content

    def test_guidance_reaches_fact_extraction(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend(["x"])
        payload = _payload(case, firm)
        payload.guidance = CompactGuidance(
            guidance=[CompactReference(category="manual", title="Handbook", key_points="8 weeks")],
        )
        fact_extraction_stage().execute(backend, payload, SETTINGS, 1)
        assert "Handbook" in backend.requests[0].messages[1].content

    def test_backend_error_becomes_failed_result(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend([backend_error("timeout")])
        result = fact_extraction_stage().execute(backend, _payload(case, firm), SETTINGS, 1)
        assert result.status == StageStatus.FAILED
        assert result.error == "timeout"
        assert result.output is None

    def test_empty_output_fails(self, case: CaseDetails, firm: FirmProfile) -> None:
        result = fact_extraction_stage().execute(FakeBackend(["   "]), _payload(case, firm), SETTINGS, 1)
        assert result.status == StageStatus.FAILED
        assert "empty" in (result.error or "")

    def test_structuring_without_fact_sheet_fails(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend()
        result = structuring_stage().execute(backend, _payload(case, firm), SETTINGS, 2)
        assert result.status == StageStatus.FAILED
        assert backend.calls == 0

    def test_structuring_carries_firm_identity(self, case: CaseDetails, firm: FirmProfile) -> None:
        backend = FakeBackend(["draft"])
        payload = _payload(case, firm, previous="FACTS")
        payload.additional_context = "Mention the hardship."
        structuring_stage().execute(backend, payload, SETTINGS, 2)
        content = backend.requests[0].messages[1].content
        assert "FACTS" in content
        assert "Harbour & Co" in content
        assert "A. Morgan" in content
        assert "Senior Adviser" in content
        assert "185" in content
        assert "Email: a.morgan@harbour.example" in content
        assert "Mention the hardship." in content

    def test_async_backend_in_sync_execute_raises(self, case: CaseDetails, firm: FirmProfile) -> None:
        with pytest.raises(TypeError, match="arun"):
            fact_extraction_stage().execute(FakeAsyncBackend(["x"]), _payload(case, firm), SETTINGS, 1)


class TestMarkerPreservation:
    def test_lost_marker_fails_by_default(self, case: CaseDetails, firm: FirmProfile) -> None:
        rewritten = DRAFT_WITH_MARKERS.replace("**Remedy Sought**", "Remedy Sought")
        result = tone_finishing_stage().execute(
            FakeBackend([rewritten]), _payload(case, firm, DRAFT_WITH_MARKERS), SETTINGS, 3,
        )
        assert result.status == StageStatus.FAILED
        assert result.missing_markers == ("**Remedy Sought**",)
        assert "structural marker" in (result.error or "")

    def test_lost_marker_warns_under_warn_policy(self, case: CaseDetails, firm: FirmProfile) -> None:
        rewritten = DRAFT_WITH_MARKERS.replace("**Remedy Sought**", "Remedy Sought")
        result = tone_finishing_stage().execute(
            FakeBackend([rewritten]), _payload(case, firm, DRAFT_WITH_MARKERS), SETTINGS, 3, "warn",
        )
        assert result.status == StageStatus.SUCCEEDED
        assert result.missing_markers == ("**Remedy Sought**",)

    def test_preserved_markers_succeed(self, case: CaseDetails, firm: FirmProfile) -> None:
        polished = DRAFT_WITH_MARKERS.replace("was delayed", "was regrettably delayed")
        result = tone_finishing_stage().execute(
            FakeBackend([polished]), _payload(case, firm, DRAFT_WITH_MARKERS), SETTINGS, 3,
        )
        assert result.status == StageStatus.SUCCEEDED
        assert result.missing_markers == ()


class TestAexecute:
    async def _run(self, backend: FakeBackend, case: CaseDetails, firm: FirmProfile) -> StageStatus:
        result = await fact_extraction_stage().aexecute(backend, _payload(case, firm), SETTINGS, 1)
        return result.status

    @pytest.mark.asyncio
    async def test_async_backend(self, case: CaseDetails, firm: FirmProfile) -> None:
        assert await self._run(FakeAsyncBackend(["facts"]), case, firm) == StageStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_sync_backend_in_async_path(self, case: CaseDetails, firm: FirmProfile) -> None:
        assert await self._run(FakeBackend(["facts"]), case, firm) == StageStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_async_error_captured(self, case: CaseDetails, firm: FirmProfile) -> None:
        assert await self._run(FakeAsyncBackend([backend_error()]), case, firm) == StageStatus.FAILED
