"""Tests for core/findings.py."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from controlcheck.core.findings import (
    batch_result_to_dict,
    export_batch_result_json,
    load_batch_request,
    load_finding_summaries,
)
from controlcheck.errors import InputError
from controlcheck.models.batch import BatchResult
from controlcheck.models.finding import AnalysisResult, ComplianceStatus, RiskLevel


def make_result(error_message=None) -> BatchResult:
    started = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    return BatchResult(
        project_id="proj-1",
        framework_id="fw-1",
        analysis_started=started,
        analysis_completed=started + timedelta(seconds=90),
        total_controls=1,
        controls_analyzed=1,
        findings_created=1,
        results=[AnalysisResult(control_id="c1", control_code="A.1", status=ComplianceStatus.NON_COMPLIANT)],
        error_message=error_message,
    )


class TestLoadBatchRequest:
    def test_camel_case_request(self, tmp_path: Path):
        path = tmp_path / "request.json"
        path.write_text(json.dumps({
            "projectId": "p",
            "frameworkId": "f",
            "frameworkCode": "SOC2",
            "controls": [{"id": "c1", "code": "CC1.1", "title": "Integrity", "isMandatory": False}],
            "documents": [{"id": "d1", "fileName": "a.pdf", "mimeType": "application/pdf", "pageCount": 3, "content": "x"}],
            "options": {"mandatoryControlsOnly": True},
        }), encoding="utf-8")

        request = load_batch_request(path)
        assert request.framework_code == "SOC2"
        assert request.controls[0].is_mandatory is False
        assert request.documents[0].page_count == 3
        assert request.options.mandatory_controls_only is True
        assert request.options.skip_existing_findings is False

    def test_round_trip_fixture(self, request_file: Path, batch_request):
        assert load_batch_request(request_file) == batch_request

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InputError, match="Invalid JSON"):
            load_batch_request(path)

    def test_missing_fields(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text('{"projectId": "p"}', encoding="utf-8")
        with pytest.raises(InputError, match="Invalid batch request"):
            load_batch_request(path)


class TestLoadFindingSummaries:
    def test_list(self, tmp_path: Path):
        path = tmp_path / "findings.json"
        path.write_text(json.dumps([
            {"status": "Compliant", "riskLevel": "Low", "isMandatory": False},
            {"status": "NonCompliant"},
        ]), encoding="utf-8")
        findings = load_finding_summaries(path)
        assert findings[0].risk_level == RiskLevel.LOW
        assert findings[0].is_mandatory is False
        assert findings[1].risk_level is None
        assert findings[1].is_mandatory is True

    def test_batch_result_file(self, tmp_path: Path):
        path = export_batch_result_json(make_result(), tmp_path / "result.json")
        findings = load_finding_summaries(path)
        assert [f.status for f in findings] == [ComplianceStatus.NON_COMPLIANT]

    def test_invalid_status(self, tmp_path: Path):
        path = tmp_path / "findings.json"
        path.write_text('[{"status": "Great"}]', encoding="utf-8")
        with pytest.raises(InputError):
            load_finding_summaries(path)


class TestExportBatchResult:
    def test_outbound_shape(self, tmp_path: Path):
        path = export_batch_result_json(make_result(), tmp_path / "out" / "result.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["projectId"] == "proj-1"
        assert data["findingsCreated"] == 1
        assert data["durationSeconds"] == 90.0
        assert data["analysisStarted"].startswith("2026-01-01T12:00:00")
        assert data["results"][0]["controlCode"] == "A.1"
        assert data["summary"]["overallScore"] == 100.0
        assert "errorMessage" not in data

    def test_error_message_included_when_set(self):
        data = batch_result_to_dict(make_result(error_message="boom"))
        assert data["errorMessage"] == "boom"
