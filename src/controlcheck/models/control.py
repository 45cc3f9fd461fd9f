"""Control catalog and document corpus inputs."""

from __future__ import annotations

from typing import Optional

from .base import FrozenWireModel
from .finding import RiskLevel


class ControlDescriptor(FrozenWireModel):
    id: str
    code: str
    title: str
    description: str = ""
    implementation_guidance: Optional[str] = None
    is_mandatory: bool = True
    default_risk_level: Optional[RiskLevel] = None

    @property
    def label(self) -> str:
        return f"{self.code}: {self.title}"


class DocumentExcerpt(FrozenWireModel):
    id: str
    file_name: str
    mime_type: str = "text/plain"
    page_count: int = 0
    content: str = ""


class AnalysisRequest(FrozenWireModel):
    """One control plus the project's full document set."""

    project_id: str
    control: ControlDescriptor
    documents: list[DocumentExcerpt] = []


class BatchOptions(FrozenWireModel):
    skip_existing_findings: bool = False
    mandatory_controls_only: bool = False


class BatchRequest(FrozenWireModel):
    project_id: str
    framework_id: str
    framework_code: str
    framework_name: str = ""
    controls: list[ControlDescriptor] = []
    documents: list[DocumentExcerpt] = []
    options: BatchOptions = BatchOptions()

    def request_for(self, control: ControlDescriptor) -> AnalysisRequest:
        return AnalysisRequest(
            project_id=self.project_id,
            control=control,
            documents=self.documents,
        )
