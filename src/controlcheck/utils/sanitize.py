"""Error message sanitization to prevent credential leakage."""

from __future__ import annotations

import os
import re
from typing import Iterable, Optional

_KEY_PATTERNS = (
    (re.compile(r"sk-ant-[a-zA-Z0-9_-]+"), "[REDACTED_KEY]"),
    (re.compile(r"sk-[a-zA-Z0-9_-]{20,}"), "[REDACTED_KEY]"),
    (re.compile(r"Bearer\s+\S+"), "Bearer [REDACTED]"),
    (re.compile(r"(?i)(x-)?api-key[\"']?\s*[:=]\s*[\"']?[^\s\"',}]+"), r"\1api-key: [REDACTED]"),
    (re.compile(r"Authorization:\s*\S+"), "Authorization: [REDACTED]"),
)

MAX_ERROR_LENGTH = 500


def sanitize_error(message: str, secrets: Optional[Iterable[str]] = None) -> str:
    """Redact API keys, explicit secrets and home paths from an error message.

    Provider error bodies can be long HTML pages; the result is capped at
    ``MAX_ERROR_LENGTH`` characters.
    """
    if not message:
        return message

    sanitized = message
    for secret in secrets or ():
        if secret:
            sanitized = sanitized.replace(secret, "[REDACTED]")
    for pattern, replacement in _KEY_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    if len(sanitized) > MAX_ERROR_LENGTH:
        sanitized = sanitized[:MAX_ERROR_LENGTH] + "..."
    return sanitized
