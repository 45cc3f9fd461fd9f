"""Response parser: converts free-text AI replies to structured findings.

The reasoning service is asked for one JSON object but may wrap it in code
fences or prose, misspell enum values, or return numbers out of range. The
parser repairs what it safely can and only gives up when no object can be
located at all.
"""

from __future__ import annotations

import json
import math
import re
import uuid
from typing import Any, Optional

from ..errors import ResponseParseError
from ..models.control import AnalysisRequest
from ..models.finding import (
    UNRESOLVED_DOCUMENT_ID,
    AnalysisResult,
    ComplianceStatus,
    EvidenceReference,
    EvidenceType,
    RiskLevel,
    TextExcerpt,
)
from ..models.remediation import RemediationGuidance, RemediationStep

PARSE_FAILURE_PREFIX = "AI response parsing failed"

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?[ \t]*```\s*$")


def _normalize_token(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


_STATUS_ALIASES: dict[str, ComplianceStatus] = {
    _normalize_token(s.value): s for s in ComplianceStatus
}
_STATUS_ALIASES.update({
    "partial": ComplianceStatus.PARTIALLY_COMPLIANT,
    "partiallymet": ComplianceStatus.PARTIALLY_COMPLIANT,
    "noncompliance": ComplianceStatus.NON_COMPLIANT,
    "na": ComplianceStatus.NOT_APPLICABLE,
    "n/a": ComplianceStatus.NOT_APPLICABLE,
})
_RISK_ALIASES: dict[str, RiskLevel] = {_normalize_token(r.value): r for r in RiskLevel}
_EVIDENCE_ALIASES: dict[str, EvidenceType] = {
    _normalize_token(e.value): e for e in EvidenceType
}


def strip_code_fences(content: str) -> str:
    """Remove a leading ```lang line and a trailing ``` line, if present."""
    text = content.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


_DECODER = json.JSONDecoder()


def _decode_error(e: json.JSONDecodeError) -> str:
    return f"invalid JSON: {e.msg} at line {e.lineno} column {e.colno}"


def _scan_for(text: str, opener: str, kind: type) -> Optional[Any]:
    """First ``kind`` value that decodes starting at an ``opener`` character."""
    start = text.find(opener)
    while start >= 0:
        try:
            data, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(data, kind):
                return data
        start = text.find(opener, start + 1)
    return None


def _extract_json(content: str, kind: type, opener: str, label: str) -> Any:
    if not content or not content.strip():
        raise ResponseParseError("empty response")

    text = strip_code_fences(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        error = _decode_error(e)
    else:
        if isinstance(data, kind):
            return data
        error = f"expected a JSON {label}, got {type(data).__name__}"

    # Prose around the value may hold stray braces, so try every opener.
    data = _scan_for(text, opener, kind)
    if data is not None:
        return data
    if opener not in text and error.startswith("invalid JSON"):
        error = f"no JSON {label} found"
    raise ResponseParseError(error)


def extract_json_object(content: str) -> dict:
    """Locate the JSON object embedded in ``content``.

    Tries the whole (fence-stripped) text first, then the first ``{`` from
    which a complete object decodes. Raises ``ResponseParseError`` when no
    object can be located.
    """
    return _extract_json(content, dict, "{", "object")


def extract_json_array(content: str) -> list:
    """Like ``extract_json_object`` but for a top-level JSON array."""
    return _extract_json(content, list, "[", "array")


def _get(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key, tolerating snake_case and camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n".join(str(v) for v in value if v is not None).strip()
    return str(value).strip()


def _clamp_unit(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(1.0, max(0.0, number))


def _non_negative(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def parse_status(value: Any) -> ComplianceStatus:
    if isinstance(value, str):
        return _STATUS_ALIASES.get(_normalize_token(value), ComplianceStatus.NOT_ASSESSED)
    return ComplianceStatus.NOT_ASSESSED


def parse_risk_level(value: Any) -> RiskLevel:
    if isinstance(value, str):
        return _RISK_ALIASES.get(_normalize_token(value), RiskLevel.MEDIUM)
    return RiskLevel.MEDIUM


def parse_evidence_type(value: Any) -> EvidenceType:
    if isinstance(value, str):
        return _EVIDENCE_ALIASES.get(_normalize_token(value), EvidenceType.CONTEXTUAL)
    return EvidenceType.CONTEXTUAL


def resolve_document_id(
    document_id: Any, file_name: str, request: AnalysisRequest
) -> str:
    """Map an evidence document id onto a known identifier.

    Order: an id supplied with the request, a well-formed UUID, a supplied
    document whose file name matches, else the unresolved sentinel.
    """
    raw = _text(document_id)
    known_ids = {doc.id for doc in request.documents}
    if raw in known_ids:
        return raw
    if raw:
        try:
            return str(uuid.UUID(raw))
        except ValueError:
            pass
    if file_name:
        for doc in request.documents:
            if doc.file_name == file_name:
                return doc.id
    return UNRESOLVED_DOCUMENT_ID


def _parse_evidence(items: Any, request: AnalysisRequest) -> list[EvidenceReference]:
    if not isinstance(items, list):
        return []
    references: list[EvidenceReference] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        file_name = _text(_get(item, "fileName", "file_name", "documentName"))
        page = _get(item, "pageReference", "page_reference", "page")
        references.append(EvidenceReference(
            document_id=resolve_document_id(
                _get(item, "documentId", "document_id"), file_name, request
            ),
            file_name=file_name,
            excerpt=_text(_get(item, "excerpt", "quote")),
            page_reference=_text(page) or None,
            relevance_score=_clamp_unit(_get(item, "relevanceScore", "relevance_score", default=0.0)),
            evidence_type=parse_evidence_type(_get(item, "evidenceType", "evidence_type")),
        ))
    return references


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [_text(v) for v in value if _text(v)]


def parse_analysis_response(
    content: str,
    request: AnalysisRequest,
    provider: Optional[str] = None,
) -> AnalysisResult:
    """Parse a reasoning-service reply into an ``AnalysisResult``.

    Raises ``ResponseParseError`` only when no JSON object can be located.
    """
    data = extract_json_object(content)
    control = request.control

    return AnalysisResult(
        control_id=control.id,
        control_code=control.code,
        status=parse_status(_get(data, "status", "complianceStatus")),
        risk_level=parse_risk_level(_get(data, "riskLevel", "risk_level", "risk")),
        finding_title=_text(_get(data, "findingTitle", "finding_title", "title")) or control.label,
        finding_description=_text(_get(data, "findingDescription", "finding_description", "description")),
        remediation_guidance=_text(_get(data, "remediationGuidance", "remediation_guidance")) or None,
        confidence_score=_clamp_unit(_get(data, "confidenceScore", "confidence_score", "confidence", default=0.0)),
        evidence_references=_parse_evidence(
            _get(data, "evidenceReferences", "evidence_references", "evidence"), request
        ),
        missing_elements=_string_list(_get(data, "missingElements", "missing_elements")),
        estimated_effort_hours=_non_negative(_get(data, "estimatedEffortHours", "estimated_effort_hours")),
        provider=provider,
    )


def parse_failure_result(
    request: AnalysisRequest,
    error: ResponseParseError,
    provider: Optional[str] = None,
) -> AnalysisResult:
    """The result recorded when a reply arrived but could not be parsed."""
    control = request.control
    return AnalysisResult(
        control_id=control.id,
        control_code=control.code,
        status=ComplianceStatus.NOT_ASSESSED,
        risk_level=control.default_risk_level or RiskLevel.MEDIUM,
        finding_title=f"Automated assessment unavailable for {control.code}",
        finding_description=(
            "The reasoning service responded, but its answer could not be "
            "interpreted. Manual review is required."
        ),
        confidence_score=0.0,
        missing_elements=[f"{PARSE_FAILURE_PREFIX}: {error}"],
        provider=provider,
        parse_failed=True,
    )


def parse_remediation_response(
    content: str, provider: Optional[str] = None
) -> RemediationGuidance:
    """Parse a remediation reply. Raises ``ResponseParseError`` on garbage."""
    data = extract_json_object(content)

    steps: list[RemediationStep] = []
    raw_steps = _get(data, "steps", default=[])
    if isinstance(raw_steps, list):
        for position, item in enumerate(raw_steps, start=1):
            if isinstance(item, str):
                item = {"description": item}
            if not isinstance(item, dict):
                continue
            number = _get(item, "stepNumber", "step_number", default=position)
            try:
                number = int(number)
            except (TypeError, ValueError):
                number = position
            steps.append(RemediationStep(
                step_number=number,
                description=_text(_get(item, "description")),
                implementation=_text(_get(item, "implementation")) or None,
                required_actions=_string_list(_get(item, "requiredActions", "required_actions")),
            ))

    return RemediationGuidance(
        summary=_text(_get(data, "summary")),
        steps=steps,
        estimated_effort_hours=_non_negative(_get(data, "estimatedEffortHours", "estimated_effort_hours")),
        resources=_string_list(_get(data, "resources")),
        best_practices=_text(_get(data, "bestPractices", "best_practices")) or None,
        provider=provider,
    )


def parse_excerpts_response(content: str) -> list[TextExcerpt]:
    """Parse an excerpt-extraction reply into ``TextExcerpt`` items.

    Items without text are dropped. Raises ``ResponseParseError`` when the
    reply holds no JSON array.
    """
    excerpts: list[TextExcerpt] = []
    for item in extract_json_array(content):
        if isinstance(item, str):
            item = {"excerpt": item}
        if not isinstance(item, dict):
            continue
        text = _text(_get(item, "excerpt", "text", "quote"))
        if not text:
            continue
        excerpts.append(TextExcerpt(
            text=text,
            page_reference=_text(_get(item, "pageReference", "page_reference", "page")) or None,
            relevance_score=_clamp_unit(_get(item, "relevanceScore", "relevance_score", default=0.0)),
            relevance_reason=_text(_get(item, "relevanceReason", "relevance_reason")) or None,
        ))
    return excerpts
