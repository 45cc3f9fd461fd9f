"""Anthropic Messages API provider."""

from __future__ import annotations

from .base import BaseProvider


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    API_URL = "https://api.anthropic.com/v1/messages"
    default_model = "claude-sonnet-4-5-20250929"
    default_api_key_env = "ANTHROPIC_API_KEY"

    def build_request(self, prompt: str) -> tuple[str, dict, dict]:
        api_key = self._get_api_key()

        body = {
            "model": self.model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        return self.settings.endpoint or self.API_URL, headers, body

    def extract_text(self, data: dict) -> str:
        for block in data["content"]:
            if block.get("type") == "text":
                return block.get("text") or ""
        return ""
