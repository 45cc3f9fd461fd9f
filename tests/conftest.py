"""Shared fixtures for controlcheck tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from controlcheck.models.control import (
    BatchOptions,
    BatchRequest,
    ControlDescriptor,
    DocumentExcerpt,
)


def analysis_reply(status: str = "Compliant", risk: str = "Low", **extra) -> str:
    """A well-formed reasoning-service reply."""
    data = {
        "status": status,
        "riskLevel": risk,
        "findingTitle": f"{status} finding",
        "findingDescription": "Assessment details.",
        "remediationGuidance": "",
        "confidenceScore": 0.8,
        "evidenceReferences": [],
        "missingElements": [],
    }
    data.update(extra)
    return json.dumps(data)


@pytest.fixture
def controls() -> list[ControlDescriptor]:
    return [
        ControlDescriptor(
            id=f"ctrl-{i}",
            code=f"A.5.{i}",
            title=f"Control {i}",
            description=f"Requirement {i}.",
            is_mandatory=i != 3,
        )
        for i in range(1, 6)
    ]


@pytest.fixture
def documents() -> list[DocumentExcerpt]:
    return [
        DocumentExcerpt(
            id="doc-policy",
            file_name="security-policy.pdf",
            mime_type="application/pdf",
            page_count=12,
            content="The organization maintains an information security policy.",
        ),
        DocumentExcerpt(
            id="doc-empty",
            file_name="scan.png",
            mime_type="image/png",
            content="",
        ),
    ]


@pytest.fixture
def batch_request(controls, documents) -> BatchRequest:
    return BatchRequest(
        project_id="proj-1",
        framework_id="fw-1",
        framework_code="ISO27001",
        framework_name="ISO/IEC 27001:2022",
        controls=controls,
        documents=documents,
        options=BatchOptions(),
    )


@pytest.fixture
def request_file(tmp_path: Path, batch_request: BatchRequest) -> Path:
    """The batch request written as inbound camelCase JSON."""
    path = tmp_path / "request.json"
    path.write_text(
        json.dumps(batch_request.model_dump(mode="json", by_alias=True)),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def make_reply():
    return analysis_reply
