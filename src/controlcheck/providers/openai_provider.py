"""OpenAI chat completions provider."""

from __future__ import annotations

from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    name = "openai"
    API_URL = "https://api.openai.com/v1/chat/completions"
    default_model = "gpt-4o"
    default_api_key_env = "OPENAI_API_KEY"

    def build_request(self, prompt: str) -> tuple[str, dict, dict]:
        api_key = self._get_api_key()

        body = {
            "model": self.model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        return self.settings.endpoint or self.API_URL, headers, body

    def extract_text(self, data: dict) -> str:
        return data["choices"][0]["message"]["content"]
