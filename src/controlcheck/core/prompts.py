"""Prompt construction for the reasoning service.

The prompt is the only lever on the shape of the answer, so every prompt
spells out the exact JSON object expected back. Builders are pure: the same
control and documents always produce the same text.
"""

from __future__ import annotations

from typing import Sequence

from ..models.control import ControlDescriptor, DocumentExcerpt
from ..models.finding import ComplianceStatus, EvidenceType, RiskLevel
from ..models.remediation import RemediationRequest

MAX_DOCUMENT_CHARS = 15000
TRUNCATION_MARKER = "[... CONTENT TRUNCATED FOR LENGTH ...]"
EXCERPT_SOURCE_CHARS = 10000
EXCERPT_TRUNCATION_MARKER = "[... TRUNCATED ...]"
EMPTY_CONTENT_MARKER = "[EMPTY OR UNREADABLE CONTENT]"
NO_DOCUMENTS_MARKER = "NO DOCUMENTS PROVIDED"

RULE = "=" * 60
THIN_RULE = "-" * 60

# Values the model may answer with. NotAssessed is reserved for our own
# parse failures and is never offered.
ANSWER_STATUSES = (
    ComplianceStatus.COMPLIANT,
    ComplianceStatus.PARTIALLY_COMPLIANT,
    ComplianceStatus.NON_COMPLIANT,
    ComplianceStatus.NOT_APPLICABLE,
)


def truncate_content(
    content: str, limit: int = MAX_DOCUMENT_CHARS, marker: str = TRUNCATION_MARKER
) -> str:
    """Cut ``content`` at ``limit`` characters and mark the cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + "\n\n" + marker


def _section(title: str) -> list[str]:
    return [RULE, title, RULE, ""]


def _enum_values(values: Sequence) -> str:
    return " | ".join(f'"{v.value}"' for v in values)


def _document_block(
    index: int, doc: DocumentExcerpt, max_chars: int
) -> list[str]:
    lines = [
        f"Document {index}: {doc.file_name}",
        f"Document ID: {doc.id}",
        f"Type: {doc.mime_type}",
    ]
    if doc.page_count > 0:
        lines.append(f"Pages: {doc.page_count}")
    lines += ["", "Content:", THIN_RULE]
    if doc.content.strip():
        lines.append(truncate_content(doc.content, max_chars))
    else:
        lines.append(EMPTY_CONTENT_MARKER)
    lines += [THIN_RULE, ""]
    return lines


def output_schema_lines() -> list[str]:
    """The JSON contract the parser expects, as prompt text."""
    return [
        "Respond ONLY with a single valid JSON object in this exact structure:",
        "",
        "{",
        f'  "status": {_enum_values(ANSWER_STATUSES)},',
        f'  "riskLevel": {_enum_values(list(RiskLevel))},',
        '  "findingTitle": "Brief, professional title (max 120 chars)",',
        '  "findingDescription": "What was found, what is missing, why it matters",',
        '  "remediationGuidance": "Specific, actionable steps to achieve compliance",',
        '  "confidenceScore": 0.85,',
        '  "evidenceReferences": [',
        "    {",
        '      "documentId": "Document ID exactly as listed above",',
        '      "fileName": "document-name.pdf",',
        '      "excerpt": "Exact quote from the document (max 500 chars)",',
        '      "pageReference": "Page 5, Section 3.2",',
        '      "relevanceScore": 0.9,',
        f'      "evidenceType": {_enum_values(list(EvidenceType))}',
        "    }",
        "  ],",
        '  "missingElements": ["Specific requirement not met"],',
        '  "estimatedEffortHours": 16',
        "}",
        "",
        "FIELD RULES:",
        f"- status must be one of: {', '.join(s.value for s in ANSWER_STATUSES)}",
        f"- riskLevel must be one of: {', '.join(r.value for r in RiskLevel)}",
        "- confidenceScore is a number from 0.0 to 1.0 (your confidence in the assessment)",
        "- relevanceScore is a number from 0.0 to 1.0",
        "- estimatedEffortHours is a non-negative number, or null when nothing is required",
        "- documentId must be copied from the Document ID lines above",
        "- Output the JSON object only: no markdown, no commentary before or after",
    ]


def build_control_prompt(
    control: ControlDescriptor,
    documents: Sequence[DocumentExcerpt],
    max_document_chars: int = MAX_DOCUMENT_CHARS,
) -> str:
    """Build the assessment prompt for one control against the documents."""
    lines: list[str] = [
        "You are an expert compliance auditor with deep knowledge of regulatory "
        "frameworks such as ISO 27001, SOC 2, DORA, GDPR and PCI DSS.",
        "",
        "Assess the organizational documentation below against one specific "
        "control and report a structured, audit-ready finding.",
        "",
    ]

    lines += _section("CONTROL TO ASSESS")
    lines.append(f"Control Code: {control.code}")
    lines.append(f"Control Title: {control.title}")
    lines.append(f"Mandatory: {'Yes' if control.is_mandatory else 'No'}")
    lines += ["", "Control Description:", control.description or "(none provided)", ""]
    if control.implementation_guidance and control.implementation_guidance.strip():
        lines += ["Implementation Guidance:", control.implementation_guidance, ""]

    lines += _section("ORGANIZATIONAL DOCUMENTATION PROVIDED")
    if not documents:
        lines.append(NO_DOCUMENTS_MARKER)
        lines.append(
            "No evidence was provided for this control. The absence of "
            "evidence may itself indicate a compliance gap."
        )
        lines.append("")
    else:
        for i, doc in enumerate(documents, start=1):
            lines += _document_block(i, doc, max_document_chars)

    lines += _section("ANALYSIS INSTRUCTIONS")
    lines += [
        "1. Evidence: identify the passages that address the control, with page "
        "or section references where available.",
        "2. Determination: Compliant when every requirement is met with strong "
        "evidence; PartiallyCompliant when some requirements are met; "
        "NonCompliant when requirements are unmet or evidence is missing; "
        "NotApplicable only when the control clearly does not apply.",
        "3. Risk: Critical (immediate risk to security, data, operations or "
        "regulatory standing), High (prompt remediation needed), Medium "
        "(address in the near term), Low (minor gap).",
        "4. Gaps: list each missing element as a separate entry.",
        "5. Remediation: give actionable steps and an effort estimate in hours.",
        "",
    ]

    lines += _section("REQUIRED OUTPUT FORMAT")
    lines += output_schema_lines()
    lines += ["", "Begin your analysis now."]

    return "\n".join(lines) + "\n"


def build_remediation_prompt(request: RemediationRequest) -> str:
    """Build a prompt asking for a stepwise remediation plan."""
    lines: list[str] = [
        "You are a compliance remediation consultant with expertise in "
        "implementing security controls and regulatory requirements.",
        "",
    ]
    if request.control_code:
        lines += [f"CONTROL: {request.control_code}", ""]
    lines += [
        "CONTROL REQUIREMENT:",
        request.control_description,
        "",
        "IDENTIFIED GAP:",
        request.gap_description,
        "",
        f"CURRENT STATUS: {request.current_status.value}",
        f"RISK LEVEL: {request.risk_level.value}",
        "",
    ]
    if request.organization_context:
        lines += ["ORGANIZATION CONTEXT:", request.organization_context, ""]

    lines += [
        "TASK: Provide detailed, actionable remediation guidance.",
        "",
        "Respond ONLY with a single valid JSON object:",
        "{",
        '  "summary": "Executive summary of the remediation approach",',
        '  "steps": [',
        "    {",
        '      "stepNumber": 1,',
        '      "description": "Step description",',
        '      "implementation": "How to carry out the step",',
        '      "requiredActions": ["Action 1", "Action 2"]',
        "    }",
        "  ],",
        '  "estimatedEffortHours": 24,',
        '  "resources": ["Resource 1"],',
        '  "bestPractices": "Relevant industry practice"',
        "}",
    ]
    return "\n".join(lines) + "\n"



def build_excerpt_prompt(
    document_content: str,
    control_description: str,
    max_chars: int = EXCERPT_SOURCE_CHARS,
) -> str:
    """Build a prompt asking for the passages of one document relevant to a control."""
    lines: list[str] = [
        "You are a compliance documentation expert specializing in evidence extraction.",
        "",
        "TASK: Extract the most relevant excerpts from the provided document "
        "that relate to the control requirement.",
        "",
        "CONTROL REQUIREMENT:",
        control_description,
        "",
        "DOCUMENT CONTENT:",
        THIN_RULE,
        truncate_content(document_content, max_chars, EXCERPT_TRUNCATION_MARKER),
        THIN_RULE,
        "",
        "Extract 1-5 most relevant excerpts. Respond ONLY with a JSON array:",
        "",
        "[",
        "  {",
        '    "excerpt": "Exact text from document",',
        '    "pageReference": "Page/Section",',
        '    "relevanceScore": 0.95,',
        '    "relevanceReason": "Why this excerpt is relevant"',
        "  }",
        "]",
    ]
    return "\n".join(lines) + "\n"
