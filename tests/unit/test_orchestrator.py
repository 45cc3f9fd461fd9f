"""Tests for core/orchestrator.py."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from controlcheck.core.analyzer import ControlAnalyzer
from controlcheck.core.cancellation import CancellationToken
from controlcheck.core.collaborators import JsonFindingSink, StaticFindingLookup
from controlcheck.core.orchestrator import (
    BatchOrchestrator,
    build_orchestrator,
    estimate_remaining,
)
from controlcheck.errors import ProviderTimeout, ProviderUnavailable
from controlcheck.models.control import BatchOptions
from controlcheck.models.finding import AnalysisResult, ComplianceStatus
from controlcheck.providers.mock import MockProvider


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.results = []
        self.fail = fail

    async def batch_completed(self, result) -> None:
        self.results.append(result)
        if self.fail:
            raise RuntimeError("mail server down")


class ExplodingAnalyzer:
    """Analyzes normally until ``explode_at`` controls have been seen."""

    def __init__(self, explode_at: int, wrong_id: bool = False):
        self.explode_at = explode_at
        self.wrong_id = wrong_id
        self.calls = 0

    async def analyze_control(self, request, cancel=None):
        self.calls += 1
        if self.calls == self.explode_at:
            if self.wrong_id:
                return AnalysisResult(control_id="someone-else")
            raise ValueError("database connection lost")
        return AnalysisResult(
            control_id=request.control.id,
            control_code=request.control.code,
            status=ComplianceStatus.COMPLIANT,
        )


def orchestrator(primary, fallback=None, **kwargs) -> BatchOrchestrator:
    kwargs.setdefault("inter_control_delay", 0)
    return BatchOrchestrator(ControlAnalyzer(primary, fallback), **kwargs)


class TestEstimateRemaining:
    def test_formula(self):
        assert estimate_remaining(10.0, 2, 5) == 15.0

    def test_nothing_analyzed(self):
        assert estimate_remaining(3.0, 0, 5) == 0.0

    def test_finished(self):
        assert estimate_remaining(3.0, 5, 5) == 0.0


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_progress_events(self, batch_request, make_reply):
        events = []
        ticks = itertools.count(0, 2)
        orch = orchestrator(
            MockProvider(responses=[
                make_reply("Compliant"),
                make_reply("NonCompliant", "High"),
                make_reply("Compliant"),
            ]),
            clock=lambda: float(next(ticks)),
        )
        result = await orch.run_batch(batch_request, on_progress=events.append)

        assert len(events) == 5
        assert [e.percent_complete for e in events] == [20.0, 40.0, 60.0, 80.0, 100.0]
        assert [e.controls_analyzed for e in events] == [1, 2, 3, 4, 5]
        assert events[0].current_control == "A.5.1: Control 1"
        assert events[0].elapsed_seconds == 2.0
        assert events[0].estimated_seconds_remaining == 8.0
        assert events[1].estimated_seconds_remaining == 6.0
        assert events[-1].estimated_seconds_remaining == 0.0
        assert [e.findings_found for e in events] == [0, 1, 1, 1, 1]

        assert result.total_controls == 5
        assert result.controls_analyzed == 5
        assert result.findings_created == 1
        assert result.error_message is None
        assert result.cancelled is False
        assert not result.aborted
        assert [r.control_id for r in result.results] == [c.id for c in batch_request.controls]
        assert result.analysis_completed >= result.analysis_started

    @pytest.mark.asyncio
    async def test_findings_created_matches_non_compliant(self, batch_request):
        result = await orchestrator(MockProvider()).run_batch(batch_request)
        non_compliant = [r for r in result.results if r.status != ComplianceStatus.COMPLIANT]
        assert result.findings_created == len(non_compliant)

    @pytest.mark.asyncio
    async def test_summary_uses_control_mandatory_flags(self, batch_request, make_reply):
        orch = orchestrator(MockProvider(responses=[make_reply("NonCompliant", "Low")]))
        result = await orch.run_batch(batch_request)
        assert result.summary.overall_score == 0.0
        assert result.summary.non_compliant_count == 5
        assert result.summary.overall_status == ComplianceStatus.NON_COMPLIANT

    @pytest.mark.asyncio
    async def test_mandatory_only(self, batch_request):
        provider = MockProvider()
        request = batch_request.model_copy(update={"options": BatchOptions(mandatory_controls_only=True)})
        result = await orchestrator(provider).run_batch(request)

        assert provider.call_count == 4
        assert result.controls_analyzed == 4
        assert result.controls_skipped == 1
        assert "ctrl-3" not in [r.control_id for r in result.results]

    @pytest.mark.asyncio
    async def test_skip_existing_findings(self, batch_request):
        provider = MockProvider()
        request = batch_request.model_copy(update={"options": BatchOptions(skip_existing_findings=True)})
        orch = orchestrator(provider, finding_lookup=StaticFindingLookup(["ctrl-2", "ctrl-4"]))
        result = await orch.run_batch(request)

        assert provider.call_count == 3
        assert result.controls_skipped == 2
        assert [r.control_id for r in result.results] == ["ctrl-1", "ctrl-3", "ctrl-5"]

    @pytest.mark.asyncio
    async def test_skip_existing_without_lookup_skips_nothing(self, batch_request):
        request = batch_request.model_copy(update={"options": BatchOptions(skip_existing_findings=True)})
        result = await orchestrator(MockProvider()).run_batch(request)
        assert result.controls_analyzed == 5
        assert result.controls_skipped == 0

    @pytest.mark.asyncio
    async def test_lookup_ignored_when_option_off(self, batch_request):
        orch = orchestrator(MockProvider(), finding_lookup=StaticFindingLookup(["ctrl-1"]))
        result = await orch.run_batch(batch_request)
        assert result.controls_analyzed == 5

    @pytest.mark.asyncio
    async def test_empty_framework(self, batch_request):
        request = batch_request.model_copy(update={"controls": []})
        result = await orchestrator(MockProvider()).run_batch(request)
        assert result.total_controls == 0
        assert result.results == []
        assert result.summary.overall_score == 100.0

    @pytest.mark.asyncio
    async def test_empty_documents_still_analyzed(self, batch_request):
        provider = MockProvider()
        request = batch_request.model_copy(update={"documents": []})
        result = await orchestrator(provider).run_batch(request)
        assert result.controls_analyzed == 5
        assert "NO DOCUMENTS PROVIDED" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_parse_failures_stay_in_results(self, batch_request, make_reply):
        provider = MockProvider(responses=[make_reply(), "garbage", make_reply()])
        result = await orchestrator(provider).run_batch(batch_request)
        assert result.controls_analyzed == 5
        assert result.error_message is None
        assert result.results[1].parse_failed is True
        assert result.results[1].status == ComplianceStatus.NOT_ASSESSED
        assert result.summary.not_assessed_count == 1


class CountingToken(CancellationToken):
    """Records every inter-control wait instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        return self.cancelled


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_waits_only_between_analyzed_controls(self, batch_request):
        token = CountingToken()
        result = await orchestrator(MockProvider(), inter_control_delay=0.5).run_batch(
            batch_request, cancel=token
        )
        assert result.controls_analyzed == 5
        assert token.sleeps == [0.5] * 4

    @pytest.mark.asyncio
    async def test_no_wait_after_trailing_skipped_controls(self, batch_request):
        controls = [
            c.model_copy(update={"is_mandatory": c.id not in ("ctrl-3", "ctrl-5")})
            for c in batch_request.controls
        ]
        request = batch_request.model_copy(update={
            "controls": controls,
            "options": BatchOptions(mandatory_controls_only=True),
        })
        token = CountingToken()
        result = await orchestrator(MockProvider(), inter_control_delay=0.5).run_batch(
            request, cancel=token
        )
        assert [r.control_id for r in result.results] == ["ctrl-1", "ctrl-2", "ctrl-4"]
        assert len(token.sleeps) == 2

    @pytest.mark.asyncio
    async def test_single_eligible_control_never_waits(self, batch_request):
        request = batch_request.model_copy(update={"options": BatchOptions(skip_existing_findings=True)})
        lookup = StaticFindingLookup(["ctrl-1", "ctrl-2", "ctrl-3", "ctrl-5"])
        token = CountingToken()
        result = await orchestrator(MockProvider(), finding_lookup=lookup, inter_control_delay=0.5).run_batch(
            request, cancel=token
        )
        assert result.controls_analyzed == 1
        assert token.sleeps == []


class TestBatchFailures:
    @pytest.mark.asyncio
    async def test_both_providers_fail_aborts_batch(self, batch_request, make_reply):
        primary = MockProvider(
            responses=[make_reply(), make_reply(), ProviderUnavailable("down", provider="primary")],
            name="primary",
        )
        fallback = MockProvider(responses=[ProviderTimeout("slow", provider="fallback")], name="fallback")
        result = await orchestrator(primary, fallback).run_batch(batch_request)

        assert result.controls_analyzed == 2
        assert len(result.results) == 2
        assert result.aborted
        assert "A.5.3" in result.error_message
        assert primary.call_count == 3
        assert result.cancelled is False

    @pytest.mark.asyncio
    async def test_internal_exception_aborts_batch(self, batch_request):
        analyzer = ExplodingAnalyzer(explode_at=3)
        notifier = RecordingNotifier()
        orch = BatchOrchestrator(analyzer, notifier=notifier, inter_control_delay=0)
        result = await orch.run_batch(batch_request)

        assert result.controls_analyzed == 2
        assert result.error_message == "database connection lost"
        assert analyzer.calls == 3
        assert result.summary.compliant_count == 2
        assert notifier.results == [result]

    @pytest.mark.asyncio
    async def test_mismatched_result_aborts_batch(self, batch_request):
        orch = BatchOrchestrator(ExplodingAnalyzer(explode_at=2, wrong_id=True), inter_control_delay=0)
        result = await orch.run_batch(batch_request)
        assert result.controls_analyzed == 1
        assert "someone-else" in result.error_message

    @pytest.mark.asyncio
    async def test_notifier_failure_is_not_raised(self, batch_request):
        notifier = RecordingNotifier(fail=True)
        result = await orchestrator(MockProvider(), notifier=notifier).run_batch(batch_request)
        assert result.controls_analyzed == 5
        assert len(notifier.results) == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_after_second_control(self, batch_request):
        cancel = CancellationToken()
        provider = MockProvider()

        def on_progress(event):
            if event.controls_analyzed == 2:
                cancel.cancel()

        result = await orchestrator(provider).run_batch(batch_request, on_progress, cancel)

        assert result.controls_analyzed == 2
        assert result.cancelled is True
        assert result.error_message is None
        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_cancel_during_delay(self, batch_request):
        cancel = CancellationToken()
        orch = orchestrator(MockProvider(), inter_control_delay=30)

        def on_progress(event):
            asyncio.get_running_loop().call_later(0.01, cancel.cancel)

        result = await asyncio.wait_for(orch.run_batch(batch_request, on_progress, cancel), timeout=5)
        assert result.controls_analyzed == 1
        assert result.cancelled is True

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, batch_request):
        cancel = CancellationToken()
        provider = MockProvider(delay_seconds=30)
        asyncio.get_running_loop().call_later(0.01, cancel.cancel)

        result = await asyncio.wait_for(
            orchestrator(provider).run_batch(batch_request, cancel=cancel), timeout=5
        )
        assert result.controls_analyzed == 0
        assert result.cancelled is True
        assert result.summary.overall_score == 100.0

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, batch_request):
        cancel = CancellationToken()
        cancel.cancel()
        provider = MockProvider()
        result = await orchestrator(provider).run_batch(batch_request, cancel=cancel)
        assert result.controls_analyzed == 0
        assert result.cancelled is True
        assert provider.call_count == 0


class TestSinkAndWiring:
    @pytest.mark.asyncio
    async def test_sink_receives_actionable_findings(self, batch_request, tmp_path, make_reply):
        sink = JsonFindingSink(tmp_path)
        provider = MockProvider(responses=[
            make_reply("Compliant"),
            make_reply("NonCompliant", "High"),
            make_reply("NotApplicable"),
            make_reply("PartiallyCompliant"),
            make_reply("Compliant"),
        ])
        await orchestrator(provider, sink=sink).run_batch(batch_request)
        assert sorted(p.name for p in sink.written) == ["A.5.2.json", "A.5.4.json"]

    def test_build_orchestrator_from_config(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "k")
        config = {
            "ai": {"provider": "anthropic", "fallback_provider": "ollama", "enable_fallback": True},
            "analysis": {"inter_control_delay_ms": 250, "max_document_chars": 1000},
        }
        orch = build_orchestrator(config)
        assert orch.inter_control_delay == 0.25
        assert orch.analyzer.max_document_chars == 1000
        assert [p.name for p in orch.analyzer.providers] == ["anthropic", "ollama"]
