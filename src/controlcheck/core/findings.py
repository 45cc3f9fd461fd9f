"""JSON import and export for batch requests and results."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ..errors import InputError
from ..models.batch import BatchResult
from ..models.control import BatchRequest
from ..models.finding import FindingSummary
from ..models.remediation import RemediationRequest

_FINDING_SUMMARIES = TypeAdapter(list[FindingSummary])


def _read_json(path: Path) -> Any:
    try:
        content = path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
    except OSError as e:
        raise InputError(f"Cannot read {path}: {e}") from e
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in {path}: {e.msg} at line {e.lineno}") from e


def load_batch_request(path: Path) -> BatchRequest:
    """Load an inbound batch request (camelCase or snake_case keys)."""
    data = _read_json(path)
    try:
        return BatchRequest.model_validate(data)
    except ValidationError as e:
        raise InputError(f"Invalid batch request in {path}:\n{e}") from e


def load_remediation_request(path: Path) -> RemediationRequest:
    data = _read_json(path)
    try:
        return RemediationRequest.model_validate(data)
    except ValidationError as e:
        raise InputError(f"Invalid remediation request in {path}:\n{e}") from e


def load_finding_summaries(path: Path) -> list[FindingSummary]:
    """Load ``[{status, riskLevel, isMandatory}, ...]`` for standalone scoring.

    A batch result file is accepted too; its ``results`` are used.
    """
    data = _read_json(path)
    if isinstance(data, dict) and "results" in data:
        data = data["results"]
    try:
        return _FINDING_SUMMARIES.validate_python(data)
    except ValidationError as e:
        raise InputError(f"Invalid findings list in {path}:\n{e}") from e


def batch_result_to_dict(result: BatchResult) -> dict:
    """Outbound shape: camelCase keys, ``errorMessage`` only when set."""
    data = result.model_dump(mode="json", by_alias=True)
    if data.get("errorMessage") is None:
        data.pop("errorMessage", None)
    return data


def export_batch_result_json(result: BatchResult, output_path: Path) -> Path:
    """Write a batch result to a JSON file (UTF-8, no BOM)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(batch_result_to_dict(result), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return output_path
