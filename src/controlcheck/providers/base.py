"""Reasoning-provider abstraction.

Each adapter performs exactly one HTTP call per ``analyze`` invocation and
reports failures through the ``ProviderError`` family. Retries and fallback
belong to the caller.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..core.cancellation import CancellationToken, run_cancellable
from ..errors import (
    AuthError,
    ConfigError,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from ..models.provider import ProviderSettings
from ..utils.sanitize import sanitize_error

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("anthropic", "openai", "azure-openai", "ollama", "mock")


@runtime_checkable
class ReasoningProvider(Protocol):
    """Capability every adapter offers: prompt in, free text out."""

    name: str

    async def analyze(
        self, prompt: str, cancel: Optional[CancellationToken] = None
    ) -> str: ...


class BaseProvider:
    """Shared HTTP plumbing and error mapping for the concrete adapters."""

    name: str = "base"
    default_model: str = ""
    default_api_key_env: Optional[str] = None

    def __init__(
        self,
        settings: ProviderSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.transport = transport

    @property
    def model(self) -> str:
        return self.settings.model or self.default_model

    def _get_api_key(self) -> str:
        env_var = self.settings.api_key_env or self.default_api_key_env
        api_key = os.environ.get(env_var) if env_var else None
        if not api_key:
            raise AuthError(
                f"API key not found in environment variable: {env_var}",
                provider=self.name,
            )
        return api_key

    def build_request(self, prompt: str) -> tuple[str, dict, dict]:
        """Return ``(url, headers, body)`` for one completion call."""
        raise NotImplementedError

    def extract_text(self, data: dict) -> str:
        raise NotImplementedError

    async def analyze(
        self, prompt: str, cancel: Optional[CancellationToken] = None
    ) -> str:
        return await run_cancellable(self._call(prompt), cancel)

    async def _call(self, prompt: str) -> str:
        url, headers, body = self.build_request(prompt)
        secrets = [v for k, v in headers.items() if k.lower() in ("x-api-key", "api-key", "authorization")]

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderTimeout(
                f"Request timed out after {self.settings.timeout_seconds}s: {type(e).__name__}",
                provider=self.name,
            ) from e
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response, secrets) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(
                sanitize_error(f"{type(e).__name__}: {e}", secrets), provider=self.name
            ) from e
        except ValueError as e:
            raise ProviderUnavailable(
                f"Response body is not JSON: {e}", provider=self.name
            ) from e

        try:
            return self.extract_text(data) or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderUnavailable(
                f"Unexpected response envelope: missing {e}", provider=self.name
            ) from e

    def _status_error(self, response: httpx.Response, secrets: list[str]) -> ProviderError:
        status = response.status_code
        try:
            error_body = response.text
        except httpx.ResponseNotRead:
            error_body = ""
        message = sanitize_error(f"{status} | {error_body}", secrets)

        if status in (401, 403):
            return AuthError(message, provider=self.name)
        if status == 429:
            return RateLimited(
                message,
                provider=self.name,
                retry_after=_retry_after(response.headers.get("retry-after")),
            )
        if status == 408:
            return ProviderTimeout(message, provider=self.name)
        return ProviderUnavailable(message, provider=self.name)


def _retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def provider_settings(config: dict, provider_name: str) -> ProviderSettings:
    """Merge the common ``ai`` keys with one provider's own section."""
    ai_config = config.get("ai", {})
    common = {
        k: v
        for k, v in ai_config.items()
        if k in ("max_tokens", "temperature", "timeout_seconds")
    }
    specific = dict(ai_config.get(provider_name) or {})
    try:
        return ProviderSettings(**{**common, **specific})
    except ValueError as e:
        raise ConfigError(f"Invalid settings for provider '{provider_name}': {e}") from e


def get_reasoning_provider(
    config: dict,
    provider_name: Optional[str] = None,
    model_override: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseProvider:
    """Factory function to create a configured reasoning provider."""
    provider_name = provider_name or config.get("ai", {}).get("provider", "anthropic")
    settings = provider_settings(config, provider_name)

    if model_override:
        if provider_name == "azure-openai":
            settings = settings.model_copy(update={"deployment": model_override})
        else:
            settings = settings.model_copy(update={"model": model_override})

    if provider_name == "anthropic":
        from .anthropic import AnthropicProvider
        return AnthropicProvider(settings, transport)
    elif provider_name == "azure-openai":
        from .azure_openai import AzureOpenAIProvider
        return AzureOpenAIProvider(settings, transport)
    elif provider_name == "openai":
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(settings, transport)
    elif provider_name == "ollama":
        from .ollama import OllamaProvider
        return OllamaProvider(settings, transport)
    elif provider_name == "mock":
        from .mock import MockProvider
        return MockProvider(settings)
    else:
        raise ConfigError(f"Unknown AI provider: {provider_name}")


def get_provider_chain(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[BaseProvider, Optional[BaseProvider]]:
    """Build the primary provider and, when enabled, a distinct fallback."""
    ai_config = config.get("ai", {})
    primary_name = provider_override or ai_config.get("provider", "anthropic")
    primary = get_reasoning_provider(config, primary_name, model_override, transport)

    fallback = None
    fallback_name = ai_config.get("fallback_provider")
    if ai_config.get("enable_fallback", True) and fallback_name:
        if fallback_name == primary_name:
            logger.warning(
                "Fallback provider '%s' is the primary provider; fallback disabled",
                fallback_name,
            )
        else:
            fallback = get_reasoning_provider(config, fallback_name, transport=transport)

    return primary, fallback
