"""Per-control analysis with provider fallback.

One control goes through: build prompt, call the primary provider, fall back
to the secondary provider on a transport-level failure, parse. A reply that
arrives but cannot be parsed is recorded as NotAssessed rather than retried
elsewhere.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from ..errors import AnalysisFailedError, ProviderError, ResponseParseError
from ..models.control import AnalysisRequest
from ..models.finding import AnalysisResult, TextExcerpt
from ..models.remediation import RemediationGuidance, RemediationRequest
from ..providers.base import ReasoningProvider
from .cancellation import CancellationToken
from .parser import (
    parse_analysis_response,
    parse_excerpts_response,
    parse_failure_result,
    parse_remediation_response,
)
from .prompts import (
    MAX_DOCUMENT_CHARS,
    build_control_prompt,
    build_excerpt_prompt,
    build_remediation_prompt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ControlAnalyzer:
    """Analyzes one control at a time against a primary and optional fallback provider."""

    def __init__(
        self,
        primary: ReasoningProvider,
        fallback: Optional[ReasoningProvider] = None,
        enable_fallback: bool = True,
        max_document_chars: int = MAX_DOCUMENT_CHARS,
    ):
        self.primary = primary
        self.fallback = fallback
        self.enable_fallback = enable_fallback
        self.max_document_chars = max_document_chars

    @property
    def providers(self) -> list[ReasoningProvider]:
        chain = [self.primary]
        if self.enable_fallback and self.fallback is not None:
            chain.append(self.fallback)
        return chain

    async def _call_with_fallback(
        self,
        label: str,
        prompt: str,
        handle: Callable[[str, ReasoningProvider], T],
        cancel: Optional[CancellationToken],
    ) -> T:
        failures: list[ProviderError] = []

        for provider in self.providers:
            if failures:
                logger.warning(
                    "%s: primary provider failed (%s); falling back to %s",
                    label, failures[-1], provider.name,
                )
            start = time.monotonic()
            try:
                content = await provider.analyze(prompt, cancel)
            except ProviderError as e:
                logger.warning(
                    "%s: %s failed after %.1fs: %s",
                    label, provider.name, time.monotonic() - start, e,
                )
                failures.append(e)
                continue
            return handle(content, provider)

        raise AnalysisFailedError(label, failures) from failures[-1]

    async def analyze_control(
        self,
        request: AnalysisRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Assess one control.

        Raises ``AnalysisFailedError`` when every attempted provider call
        failed, and ``OperationCancelled`` when the token fires.
        """
        control = request.control
        prompt = build_control_prompt(control, request.documents, self.max_document_chars)
        logger.info(
            "Analyzing control %s against %d documents", control.code, len(request.documents)
        )

        def handle(content: str, provider: ReasoningProvider) -> AnalysisResult:
            try:
                result = parse_analysis_response(content, request, provider=provider.name)
            except ResponseParseError as e:
                logger.warning(
                    "Could not parse %s response for control %s: %s",
                    provider.name, control.code, e,
                )
                return parse_failure_result(request, e, provider=provider.name)
            logger.info(
                "Analysis complete for control %s. Status: %s, Confidence: %.2f, Provider: %s",
                control.code, result.status.value, result.confidence_score, provider.name,
            )
            return result

        return await self._call_with_fallback(control.code, prompt, handle, cancel)

    async def generate_remediation(
        self,
        request: RemediationRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> RemediationGuidance:
        """Ask for a stepwise remediation plan for a known gap.

        Raises ``ResponseParseError`` when the reply holds no plan.
        """
        prompt = build_remediation_prompt(request)
        label = request.control_code or request.control_id
        logger.info("Generating remediation guidance for control %s", label)

        def handle(content: str, provider: ReasoningProvider) -> RemediationGuidance:
            return parse_remediation_response(content, provider=provider.name)

        return await self._call_with_fallback(label, prompt, handle, cancel)


    async def extract_relevant_excerpts(
        self,
        document_content: str,
        control_description: str,
        cancel: Optional[CancellationToken] = None,
        label: str = "excerpts",
    ) -> list[TextExcerpt]:
        """Ask which passages of one document bear on a control.

        A blank document yields no excerpts without a provider call. Raises
        ``ResponseParseError`` when the reply holds no array.
        """
        if not document_content.strip():
            return []
        prompt = build_excerpt_prompt(document_content, control_description)
        logger.info("Extracting relevant excerpts for %s", label)

        def handle(content: str, provider: ReasoningProvider) -> list[TextExcerpt]:
            return parse_excerpts_response(content)

        return await self._call_with_fallback(label, prompt, handle, cancel)
