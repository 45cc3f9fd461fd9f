"""Remediation guidance data models."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import FrozenWireModel
from .finding import ComplianceStatus, RiskLevel


class RemediationRequest(FrozenWireModel):
    control_id: str
    control_code: str = ""
    control_description: str
    gap_description: str
    current_status: ComplianceStatus = ComplianceStatus.NON_COMPLIANT
    risk_level: RiskLevel = RiskLevel.MEDIUM
    organization_context: Optional[str] = None


class RemediationStep(FrozenWireModel):
    step_number: int
    description: str
    implementation: Optional[str] = None
    required_actions: list[str] = []


class RemediationGuidance(FrozenWireModel):
    summary: str = ""
    steps: list[RemediationStep] = []
    estimated_effort_hours: Optional[float] = Field(default=None, ge=0.0)
    resources: list[str] = []
    best_practices: Optional[str] = None
    provider: Optional[str] = None
