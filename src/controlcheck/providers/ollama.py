"""Ollama local inference provider."""

from __future__ import annotations

from .base import BaseProvider


class OllamaProvider(BaseProvider):
    name = "ollama"
    default_model = "llama3.1:70b"
    DEFAULT_ENDPOINT = "http://localhost:11434"

    def build_request(self, prompt: str) -> tuple[str, dict, dict]:
        endpoint = self.settings.endpoint or self.DEFAULT_ENDPOINT

        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.settings.temperature,
                "num_predict": self.settings.max_tokens,
            },
        }

        return f"{endpoint.rstrip('/')}/api/generate", {}, body

    def extract_text(self, data: dict) -> str:
        return data.get("response", "")
