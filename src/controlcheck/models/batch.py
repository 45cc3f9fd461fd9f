"""Batch run data models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, computed_field

from .base import FrozenWireModel, WireModel
from .finding import AnalysisResult, ComplianceStatus


class ComplianceSummary(FrozenWireModel):
    overall_score: float = Field(default=100.0, ge=0.0, le=100.0)
    overall_status: ComplianceStatus = ComplianceStatus.NOT_ASSESSED
    compliant_count: int = 0
    partially_compliant_count: int = 0
    non_compliant_count: int = 0
    not_applicable_count: int = 0
    not_assessed_count: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0


class ProgressEvent(FrozenWireModel):
    """Emitted once per completed control."""

    total_controls: int
    controls_analyzed: int
    findings_found: int
    current_control: str
    elapsed_seconds: float
    estimated_seconds_remaining: float

    @computed_field
    @property
    def percent_complete(self) -> float:
        if self.total_controls <= 0:
            return 0.0
        return round(self.controls_analyzed / self.total_controls * 100, 2)


class BatchResult(WireModel):
    project_id: str
    framework_id: str
    analysis_started: datetime
    analysis_completed: datetime
    total_controls: int = 0
    controls_analyzed: int = 0
    controls_skipped: int = 0
    findings_created: int = 0
    results: list[AnalysisResult] = []
    summary: ComplianceSummary = ComplianceSummary()
    error_message: Optional[str] = None
    cancelled: bool = False

    @computed_field
    @property
    def duration_seconds(self) -> float:
        return round((self.analysis_completed - self.analysis_started).total_seconds(), 3)

    @property
    def aborted(self) -> bool:
        return self.error_message is not None
