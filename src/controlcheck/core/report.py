"""Markdown compliance report and run exit codes."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .. import __version__
from ..models.batch import BatchResult
from ..models.control import BatchRequest
from ..models.finding import AnalysisResult, ComplianceStatus, RiskLevel

EXIT_COMPLETED = 0
EXIT_ABORTED = 1
EXIT_CANCELLED = 130

RISK_ORDER = {
    RiskLevel.CRITICAL: 0,
    RiskLevel.HIGH: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 3,
}


def get_exit_code(result: BatchResult) -> int:
    """Map how the batch ended to a process exit code."""
    if result.cancelled:
        return EXIT_CANCELLED
    if result.aborted:
        return EXIT_ABORTED
    return EXIT_COMPLETED


def run_outcome(result: BatchResult) -> str:
    if result.cancelled:
        return "CANCELLED"
    if result.aborted:
        return "ABORTED"
    return "COMPLETED"


def _one_line(text: str) -> str:
    return " ".join(text.split()).replace("|", "\\|")


def _finding_block(r: AnalysisResult) -> list[str]:
    lines = [f"### {r.control_code}: {r.finding_title} [{r.status.value} / {r.risk_level.value}]"]
    lines.append(f"**Confidence:** {r.confidence_score:.2f}")
    if r.provider:
        lines.append(f"**Provider:** {r.provider}")
    if r.estimated_effort_hours is not None:
        lines.append(f"**Effort:** {r.estimated_effort_hours:g}h")
    if r.finding_description:
        lines.append(f"\n{r.finding_description}")
    if r.missing_elements:
        lines.append("\n**Missing elements:**")
        lines.extend(f"- {m}" for m in r.missing_elements)
    if r.evidence_references:
        lines.append("\n**Evidence:**")
        for ref in r.evidence_references:
            where = ref.file_name or ref.document_id
            if ref.page_reference:
                where += f", {ref.page_reference}"
            lines.append(f"- [{ref.evidence_type.value}] {where}: \"{_one_line(ref.excerpt)}\"")
    if r.remediation_guidance:
        lines.append(f"\n**Remediation:** {r.remediation_guidance}")
    lines.append("")
    return lines


def generate_compliance_report(
    result: BatchResult,
    request: Optional[BatchRequest] = None,
    provider: str = "",
    dry_run: bool = False,
) -> str:
    """Render a batch result as a markdown compliance report."""
    summary = result.summary
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    framework = result.framework_id
    if request is not None:
        framework = request.framework_name or request.framework_code

    lines: list[str] = []
    lines.append("# Compliance Analysis Report")
    lines.append("")
    lines.append(f"**Project:** {result.project_id}")
    lines.append(f"**Framework:** {framework}")
    lines.append(f"**Date:** {timestamp}")
    lines.append(f"**Outcome:** {run_outcome(result)}")
    lines.append(f"**Score:** {summary.overall_score:.2f}% ({summary.overall_status.value})")
    if provider:
        lines.append(f"**Provider:** {provider}")
    if dry_run:
        lines.append("**Mode:** DRY RUN (mock findings)")
    lines.append(f"**Duration:** {round(result.duration_seconds, 1)}s")
    if result.error_message:
        lines.append(f"**Error:** {result.error_message}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append(
        f"{result.controls_analyzed} of {result.total_controls} controls analyzed, "
        f"{result.controls_skipped} skipped, {result.findings_created} findings."
    )
    lines.append("")
    lines.append("| Status | Count |")
    lines.append("|--------|-------|")
    lines.append(f"| Compliant | {summary.compliant_count} |")
    lines.append(f"| Partially compliant | {summary.partially_compliant_count} |")
    lines.append(f"| Non-compliant | {summary.non_compliant_count} |")
    lines.append(f"| Not applicable | {summary.not_applicable_count} |")
    lines.append(f"| Not assessed | {summary.not_assessed_count} |")
    lines.append("")
    lines.append("| Risk | Count |")
    lines.append("|------|-------|")
    lines.append(f"| Critical | {summary.critical_count} |")
    lines.append(f"| High | {summary.high_count} |")
    lines.append(f"| Medium | {summary.medium_count} |")
    lines.append(f"| Low | {summary.low_count} |")
    lines.append("")

    lines.append("## Control Results")
    lines.append("")
    lines.append("| Control | Status | Risk | Confidence |")
    lines.append("|---------|--------|------|------------|")
    for r in result.results:
        lines.append(
            f"| {r.control_code} | {r.status.value} | {r.risk_level.value} | {r.confidence_score:.2f} |"
        )
    lines.append("")

    findings = [r for r in result.results if r.status != ComplianceStatus.COMPLIANT]
    findings.sort(key=lambda r: RISK_ORDER.get(r.risk_level, 4))
    if findings:
        lines.append("## Findings Detail")
        lines.append("")
        for r in findings:
            lines.extend(_finding_block(r))

    lines.append("---")
    lines.append(f"*Generated by controlcheck v{__version__} at {timestamp}*")

    return "\n".join(lines)
