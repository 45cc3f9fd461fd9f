"""Interfaces to the systems around the analysis engine.

Persistence, document storage and notifications live outside this package.
The orchestrator only talks to them through these protocols, and the
implementations below are the file-based ones used by the CLI.
"""

from __future__ import annotations

import json
import logging
import mimetypes
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from ..models.batch import BatchResult
from ..models.control import DocumentExcerpt
from ..models.finding import AnalysisResult, ComplianceStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class FindingLookup(Protocol):
    async def has_finding(self, control_id: str) -> bool: ...


@runtime_checkable
class DocumentCorpus(Protocol):
    async def get_documents(self, project_id: str) -> list[DocumentExcerpt]: ...


@runtime_checkable
class FindingSink(Protocol):
    async def save(self, project_id: str, result: AnalysisResult) -> None: ...


@runtime_checkable
class BatchNotifier(Protocol):
    async def batch_completed(self, result: BatchResult) -> None: ...


class StaticFindingLookup:
    """Existing findings known up front, e.g. passed on the command line."""

    def __init__(self, control_ids: Iterable[str] = ()):
        self.control_ids = {c for c in control_ids if c}

    async def has_finding(self, control_id: str) -> bool:
        return control_id in self.control_ids


class DirectoryDocumentCorpus:
    """Pre-extracted text files under ``<root>/<project_id>/``."""

    SUFFIXES = (".txt", ".md")

    def __init__(self, root: Path):
        self.root = Path(root)

    async def get_documents(self, project_id: str) -> list[DocumentExcerpt]:
        project_dir = self.root / project_id
        if not project_dir.is_dir():
            logger.warning("No document directory for project %s", project_id)
            return []

        documents: list[DocumentExcerpt] = []
        for path in sorted(project_dir.iterdir()):
            if path.suffix.lower() not in self.SUFFIXES or not path.is_file():
                continue
            mime, _ = mimetypes.guess_type(path.name)
            documents.append(DocumentExcerpt(
                id=path.stem,
                file_name=path.name,
                mime_type=mime or "text/plain",
                content=path.read_text(encoding="utf-8-sig"),
            ))
        return documents


class JsonFindingSink:
    """Writes one JSON file per finding that needs follow-up.

    Compliant and not-applicable results carry nothing to act on and are
    not written.
    """

    SKIPPED = (ComplianceStatus.COMPLIANT, ComplianceStatus.NOT_APPLICABLE)

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.written: list[Path] = []

    async def save(self, project_id: str, result: AnalysisResult) -> None:
        if result.status in self.SKIPPED:
            return
        target_dir = self.output_dir / project_id
        target_dir.mkdir(parents=True, exist_ok=True)
        name = result.control_code or result.control_id
        path = target_dir / f"{_safe_name(name)}.json"
        path.write_text(
            json.dumps(
                result.model_dump(mode="json", by_alias=True),
                indent=2,
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )
        self.written.append(path)


def _safe_name(value: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in value)
