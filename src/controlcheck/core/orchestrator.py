"""Framework batch orchestrator.

Runs every control of a framework through the analyzer, one at a time, with
a fixed delay between provider calls. The batch always produces a
``BatchResult``: cancellation and internal failures stop the loop but keep
everything collected so far.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import AnalysisFailedError, BatchAborted, OperationCancelled
from ..models.batch import BatchResult, ProgressEvent
from ..models.control import BatchRequest, ControlDescriptor
from ..models.finding import AnalysisResult
from ..providers.base import get_provider_chain
from .analyzer import ControlAnalyzer
from .cancellation import CancellationToken
from .collaborators import BatchNotifier, FindingLookup, FindingSink
from .scoring import calculate_summary

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

DEFAULT_INTER_CONTROL_DELAY = 0.5


def estimate_remaining(elapsed: float, analyzed: int, total: int) -> float:
    """Average time per analyzed control times the controls left."""
    if analyzed <= 0:
        return 0.0
    return elapsed / analyzed * max(total - analyzed, 0)


class BatchOrchestrator:
    """Sequential batch runner.

    ``on_progress`` is called synchronously after each analyzed control and
    must return quickly; a slow callback stalls the batch.
    """

    def __init__(
        self,
        analyzer: ControlAnalyzer,
        finding_lookup: Optional[FindingLookup] = None,
        sink: Optional[FindingSink] = None,
        notifier: Optional[BatchNotifier] = None,
        inter_control_delay: float = DEFAULT_INTER_CONTROL_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.analyzer = analyzer
        self.finding_lookup = finding_lookup
        self.sink = sink
        self.notifier = notifier
        self.inter_control_delay = inter_control_delay
        self.clock = clock

    async def _should_skip(self, request: BatchRequest, control: ControlDescriptor) -> Optional[str]:
        options = request.options
        if options.mandatory_controls_only and not control.is_mandatory:
            return "not mandatory"
        if options.skip_existing_findings and self.finding_lookup is not None:
            if await self.finding_lookup.has_finding(control.id):
                return "existing finding"
        return None

    async def _analyze(
        self,
        request: BatchRequest,
        control: ControlDescriptor,
        cancel: CancellationToken,
    ) -> AnalysisResult:
        result = await self.analyzer.analyze_control(request.request_for(control), cancel)
        if result.control_id != control.id:
            raise BatchAborted(
                f"Analyzer returned a result for control {result.control_id} "
                f"while analyzing {control.id}"
            )
        return result

    async def run_batch(
        self,
        request: BatchRequest,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """Analyze every control of the framework and aggregate the results."""
        cancel = cancel or CancellationToken()
        total = len(request.controls)
        started_at = datetime.now(timezone.utc)
        start = self.clock()

        results: list[AnalysisResult] = []
        skipped = 0
        cancelled = False
        error_message: Optional[str] = None

        logger.info(
            "Starting framework analysis for %s with %d controls and %d documents",
            request.framework_code, total, len(request.documents),
        )
        if request.options.skip_existing_findings and self.finding_lookup is None:
            logger.warning("skip_existing_findings is set but no finding lookup is configured")

        try:
            for control in request.controls:
                if cancel.cancelled:
                    cancelled = True
                    break

                reason = await self._should_skip(request, control)
                if reason:
                    skipped += 1
                    logger.info("Skipping control %s (%s)", control.code, reason)
                    continue

                # Rate limiting between provider calls, never after the last one
                if results and await cancel.sleep(self.inter_control_delay):
                    cancelled = True
                    break

                try:
                    result = await self._analyze(request, control, cancel)
                except OperationCancelled:
                    cancelled = True
                    break

                results.append(result)
                if self.sink is not None:
                    await self.sink.save(request.project_id, result)

                if on_progress is not None:
                    elapsed = self.clock() - start
                    on_progress(ProgressEvent(
                        total_controls=total,
                        controls_analyzed=len(results),
                        findings_found=sum(1 for r in results if r.is_finding),
                        current_control=control.label,
                        elapsed_seconds=elapsed,
                        estimated_seconds_remaining=estimate_remaining(elapsed, len(results), total),
                    ))
        except AnalysisFailedError as e:
            logger.error("Framework analysis for %s aborted: %s", request.framework_code, e)
            error_message = str(e)
        except Exception as e:
            logger.exception("Error during framework analysis for %s", request.framework_code)
            error_message = str(e) or type(e).__name__

        if cancelled:
            logger.warning(
                "Framework analysis for %s cancelled after %d of %d controls",
                request.framework_code, len(results), total,
            )

        batch = BatchResult(
            project_id=request.project_id,
            framework_id=request.framework_id,
            analysis_started=started_at,
            analysis_completed=datetime.now(timezone.utc),
            total_controls=total,
            controls_analyzed=len(results),
            controls_skipped=skipped,
            findings_created=sum(1 for r in results if r.is_finding),
            results=results,
            summary=calculate_summary(results, request.controls),
            error_message=error_message,
            cancelled=cancelled,
        )

        logger.info(
            "Framework analysis for %s finished: %d/%d analyzed, %d findings, score %.2f",
            request.framework_code, batch.controls_analyzed, total,
            batch.findings_created, batch.summary.overall_score,
        )

        if self.notifier is not None:
            try:
                await self.notifier.batch_completed(batch)
            except Exception:
                logger.exception("Batch completion notifier failed")

        return batch


def build_analyzer(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
) -> ControlAnalyzer:
    """Wire the provider chain and analyzer from an effective config."""
    primary, fallback = get_provider_chain(config, provider_override, model_override)
    ai_config = config.get("ai", {})
    analysis_config = config.get("analysis", {})

    analyzer = ControlAnalyzer(
        primary,
        fallback,
        enable_fallback=bool(ai_config.get("enable_fallback", True)),
        max_document_chars=int(analysis_config.get("max_document_chars", 15000)),
    )
    logger.info(
        "Provider: %s%s", primary.name, f" (fallback: {fallback.name})" if fallback else ""
    )
    return analyzer


def build_orchestrator(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    finding_lookup: Optional[FindingLookup] = None,
    sink: Optional[FindingSink] = None,
    notifier: Optional[BatchNotifier] = None,
) -> BatchOrchestrator:
    """Wire providers, analyzer and orchestrator from an effective config."""
    analysis_config = config.get("analysis", {})
    analyzer = build_analyzer(config, provider_override, model_override)

    return BatchOrchestrator(
        analyzer,
        finding_lookup=finding_lookup,
        sink=sink,
        notifier=notifier,
        inter_control_delay=float(analysis_config.get("inter_control_delay_ms", 500)) / 1000,
    )
