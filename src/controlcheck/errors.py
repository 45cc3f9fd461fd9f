"""Error taxonomy for compliance analysis.

Provider errors are transport-level and eligible for fallback. A parse error
means the reasoning service answered but the answer could not be trusted.
"""

from __future__ import annotations

from typing import Optional


class ControlCheckError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(ControlCheckError):
    """Configuration is missing or invalid."""


class ProviderError(ControlCheckError):
    """A single reasoning-provider call failed at the transport level."""

    def __init__(self, message: str, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider


class ProviderUnavailable(ProviderError):
    pass


class ProviderTimeout(ProviderError):
    pass


class AuthError(ProviderError):
    pass


class RateLimited(ProviderError):
    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider)
        self.retry_after = retry_after


class ResponseParseError(ControlCheckError):
    """The provider replied but no structured object could be recovered."""


class AnalysisFailedError(ControlCheckError):
    """Every configured provider failed for one control."""

    def __init__(self, control_code: str, attempts: list[ProviderError]):
        self.control_code = control_code
        self.attempts = attempts
        detail = "; ".join(f"{e.provider}: {e}" for e in attempts) or "no provider attempted"
        super().__init__(f"Analysis failed for control {control_code} ({detail})")


class BatchAborted(ControlCheckError):
    """Internal orchestration failure that halts the remaining batch."""


class OperationCancelled(ControlCheckError):
    """The cancellation signal fired before or during an operation."""


class InputError(ControlCheckError):
    """A request or findings file could not be read or validated."""
