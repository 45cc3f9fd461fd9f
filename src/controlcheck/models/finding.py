"""Finding data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import FrozenWireModel

UNRESOLVED_DOCUMENT_ID = "unresolved"


class ComplianceStatus(str, Enum):
    COMPLIANT = "Compliant"
    PARTIALLY_COMPLIANT = "PartiallyCompliant"
    NON_COMPLIANT = "NonCompliant"
    NOT_APPLICABLE = "NotApplicable"
    NOT_ASSESSED = "NotAssessed"


class RiskLevel(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class EvidenceType(str, Enum):
    SUPPORTING = "Supporting"
    CONTRADICTING = "Contradicting"
    CONTEXTUAL = "Contextual"
    REMEDIATION = "Remediation"


class EvidenceReference(FrozenWireModel):
    document_id: str = UNRESOLVED_DOCUMENT_ID
    file_name: str = ""
    excerpt: str = ""
    page_reference: Optional[str] = None
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence_type: EvidenceType = EvidenceType.CONTEXTUAL

    @property
    def is_resolved(self) -> bool:
        return self.document_id != UNRESOLVED_DOCUMENT_ID


class TextExcerpt(FrozenWireModel):
    """A passage of one document judged relevant to a control."""

    text: str = ""
    page_reference: Optional[str] = None
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    relevance_reason: Optional[str] = None


class AnalysisResult(FrozenWireModel):
    """Structured outcome of assessing one control."""

    control_id: str
    control_code: str = ""
    status: ComplianceStatus = ComplianceStatus.NOT_ASSESSED
    risk_level: RiskLevel = RiskLevel.MEDIUM
    finding_title: str = ""
    finding_description: str = ""
    remediation_guidance: Optional[str] = None
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence_references: list[EvidenceReference] = []
    missing_elements: list[str] = []
    estimated_effort_hours: Optional[float] = Field(default=None, ge=0.0)
    provider: Optional[str] = None
    parse_failed: bool = False

    @property
    def is_finding(self) -> bool:
        """Anything short of Compliant counts as a finding."""
        return self.status != ComplianceStatus.COMPLIANT


class FindingSummary(FrozenWireModel):
    """Minimal view of a finding used for scoring."""

    status: ComplianceStatus
    risk_level: Optional[RiskLevel] = None
    is_mandatory: bool = True
