"""Offline provider returning canned answers.

Used by ``--dry-run`` and by tests that need to script provider behavior.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional, Sequence, Union

from ..core.cancellation import CancellationToken, run_cancellable
from ..models.provider import ProviderSettings

MockReply = Union[str, Exception]

MOCK_RESPONSES: tuple[str, ...] = (
    json.dumps({
        "status": "PartiallyCompliant",
        "riskLevel": "High",
        "findingTitle": "Policy exists but lacks review cadence",
        "findingDescription": (
            "The documentation defines the required policy, but no periodic "
            "review or approval record is evidenced."
        ),
        "remediationGuidance": "Define an annual review cycle and record approvals.",
        "confidenceScore": 0.7,
        "evidenceReferences": [],
        "missingElements": ["Documented review cadence", "Approval record"],
        "estimatedEffortHours": 8,
    }),
    json.dumps({
        "status": "Compliant",
        "riskLevel": "Low",
        "findingTitle": "Control requirements are met",
        "findingDescription": "The documentation fully addresses the control.",
        "remediationGuidance": "",
        "confidenceScore": 0.9,
        "evidenceReferences": [],
        "missingElements": [],
    }),
    json.dumps({
        "status": "NonCompliant",
        "riskLevel": "Critical",
        "findingTitle": "No evidence for the control",
        "findingDescription": "None of the documents address this requirement.",
        "remediationGuidance": "Draft and approve a procedure covering the control.",
        "confidenceScore": 0.8,
        "evidenceReferences": [],
        "missingElements": ["Procedure document"],
        "estimatedEffortHours": 24,
    }),
)


MOCK_REMEDIATION = json.dumps({
    "summary": "Introduce a documented, owned review cycle for the policy.",
    "steps": [
        {
            "stepNumber": 1,
            "description": "Assign a policy owner",
            "implementation": "Name an accountable owner in the policy header.",
            "requiredActions": ["Confirm owner with management"],
        },
        {
            "stepNumber": 2,
            "description": "Schedule an annual review",
            "requiredActions": ["Add the review to the compliance calendar", "Record approval"],
        },
    ],
    "estimatedEffortHours": 8,
    "resources": ["Policy template"],
    "bestPractices": "Review policies at least annually and after major changes.",
})


class MockProvider:
    """Replays ``responses`` in order and then repeats the last one.

    Without scripted responses it cycles through ``MOCK_RESPONSES``.

    An ``Exception`` instance in ``responses`` is raised instead of returned.
    """

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        responses: Optional[Sequence[MockReply]] = None,
        name: str = "mock",
        delay_seconds: float = 0.0,
    ):
        self.settings = settings or ProviderSettings(model="mock")
        self.name = name
        self.responses = list(responses or [])
        self.delay_seconds = delay_seconds
        self.prompts: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def analyze(
        self, prompt: str, cancel: Optional[CancellationToken] = None
    ) -> str:
        return await run_cancellable(self._reply(prompt), cancel)

    async def _reply(self, prompt: str) -> str:
        index = len(self.prompts)
        self.prompts.append(prompt)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if index < len(self.responses):
            reply = self.responses[index]
        elif self.responses:
            reply = self.responses[-1]
        else:
            reply = MOCK_RESPONSES[index % len(MOCK_RESPONSES)]

        if isinstance(reply, Exception):
            raise reply
        return reply
