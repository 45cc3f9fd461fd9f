"""Azure OpenAI provider."""

from __future__ import annotations

from ..errors import ProviderUnavailable
from .openai_provider import OpenAIProvider


class AzureOpenAIProvider(OpenAIProvider):
    name = "azure-openai"
    default_api_key_env = "AZURE_OPENAI_KEY"
    default_api_version = "2024-10-01-preview"

    @property
    def model(self) -> str:
        return self.settings.deployment or self.settings.model or "gpt-4o"

    def build_request(self, prompt: str) -> tuple[str, dict, dict]:
        endpoint = self.settings.endpoint
        if not endpoint:
            raise ProviderUnavailable(
                "Azure OpenAI endpoint not configured", provider=self.name
            )
        api_key = self._get_api_key()
        api_version = self.settings.api_version or self.default_api_version

        url = (
            f"{endpoint.rstrip('/')}/openai/deployments/{self.model}"
            f"/chat/completions?api-version={api_version}"
        )

        body = {
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        headers = {
            "api-key": api_key,
            "Content-Type": "application/json",
        }

        return url, headers, body
