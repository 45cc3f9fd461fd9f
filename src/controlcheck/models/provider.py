"""AI provider data models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProviderSettings(BaseModel):
    """Settings bound to one reasoning-provider adapter."""

    model: str = ""
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120, gt=0)
    api_key_env: Optional[str] = None
    endpoint: Optional[str] = None
    deployment: Optional[str] = None
    api_version: Optional[str] = None
