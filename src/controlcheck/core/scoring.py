"""Weighted compliance scoring and summary aggregation."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from ..models.batch import ComplianceSummary
from ..models.control import ControlDescriptor
from ..models.finding import AnalysisResult, ComplianceStatus, FindingSummary, RiskLevel

RISK_MULTIPLIERS: dict[RiskLevel, Decimal] = {
    RiskLevel.CRITICAL: Decimal(4),
    RiskLevel.HIGH: Decimal(3),
    RiskLevel.MEDIUM: Decimal(2),
    RiskLevel.LOW: Decimal(1),
}

STATUS_ACHIEVEMENT: dict[ComplianceStatus, Decimal] = {
    ComplianceStatus.COMPLIANT: Decimal(1),
    ComplianceStatus.PARTIALLY_COMPLIANT: Decimal("0.5"),
    ComplianceStatus.NON_COMPLIANT: Decimal(0),
    ComplianceStatus.NOT_APPLICABLE: Decimal(1),
}

COMPLIANT_THRESHOLD = 90.0
PARTIAL_THRESHOLD = 50.0


def finding_weight(finding: FindingSummary) -> Decimal:
    base = Decimal(2) if finding.is_mandatory else Decimal(1)
    return base * RISK_MULTIPLIERS.get(finding.risk_level, Decimal(1))


def calculate_compliance_score(findings: Sequence[FindingSummary]) -> float:
    """Weighted compliance percentage in [0, 100], rounded to 2 decimals.

    Mandatory controls count double, and risk multiplies the weight
    (Critical 4, High 3, Medium 2, Low 1), so one critical mandatory gap
    outweighs many optional low-risk passes. NotApplicable is not penalized;
    NotAssessed earns nothing. An empty list scores 100.
    """
    if not findings:
        return 100.0

    total_weight = Decimal(0)
    achieved_weight = Decimal(0)
    for finding in findings:
        weight = finding_weight(finding)
        total_weight += weight
        achieved_weight += weight * STATUS_ACHIEVEMENT.get(finding.status, Decimal(0))

    if total_weight == 0:
        return 100.0

    score = (achieved_weight / total_weight * 100).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return float(score)


def status_for_score(score: float) -> ComplianceStatus:
    """Overall framework status implied by a score."""
    if score >= COMPLIANT_THRESHOLD:
        return ComplianceStatus.COMPLIANT
    if score >= PARTIAL_THRESHOLD:
        return ComplianceStatus.PARTIALLY_COMPLIANT
    return ComplianceStatus.NON_COMPLIANT


def summarize_findings(
    results: Iterable[AnalysisResult],
    controls: Optional[Iterable[ControlDescriptor]] = None,
) -> list[FindingSummary]:
    """Pair each result with its control's mandatory flag.

    Results whose control is unknown are treated as mandatory.
    """
    mandatory = {c.id: c.is_mandatory for c in controls or ()}
    return [
        FindingSummary(
            status=r.status,
            risk_level=r.risk_level,
            is_mandatory=mandatory.get(r.control_id, True),
        )
        for r in results
    ]


def calculate_summary(
    results: Sequence[AnalysisResult],
    controls: Optional[Iterable[ControlDescriptor]] = None,
) -> ComplianceSummary:
    if not results:
        return ComplianceSummary()

    score = calculate_compliance_score(summarize_findings(results, controls))

    def count_status(status: ComplianceStatus) -> int:
        return sum(1 for r in results if r.status == status)

    def count_risk(risk: RiskLevel) -> int:
        return sum(1 for r in results if r.risk_level == risk)

    return ComplianceSummary(
        overall_score=score,
        overall_status=status_for_score(score),
        compliant_count=count_status(ComplianceStatus.COMPLIANT),
        partially_compliant_count=count_status(ComplianceStatus.PARTIALLY_COMPLIANT),
        non_compliant_count=count_status(ComplianceStatus.NON_COMPLIANT),
        not_applicable_count=count_status(ComplianceStatus.NOT_APPLICABLE),
        not_assessed_count=count_status(ComplianceStatus.NOT_ASSESSED),
        critical_count=count_risk(RiskLevel.CRITICAL),
        high_count=count_risk(RiskLevel.HIGH),
        medium_count=count_risk(RiskLevel.MEDIUM),
        low_count=count_risk(RiskLevel.LOW),
    )
