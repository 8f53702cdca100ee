"""Reasoning collaborators for trace analysis: Ollama, Groq, OpenAI, Anthropic, Gemini and OpenRouter.

Every provider is asked for a single JSON object and returns the raw text.
Transport and HTTP failures propagate as ``requests`` exceptions; the
reliability layer classifies them and decides whether to retry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .config import LLMSettings
from .errors import LLMCallError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 2048
SYSTEM_INSTRUCTION = (
    "You analyse static data-flow traces of Vue components. "
    "Reply with exactly one JSON object and nothing else."
)


class LLMProvider:
    """Sends one prompt and returns the model's text."""

    name = "base"
    requires_key = True

    def __init__(self, model: str, api_key: str = "", endpoint: str = ""):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.session = requests.Session()
        self.session.headers["Content-Type"] = "application/json"

    def generate(self, prompt: str) -> str:
        if self.requires_key and not self.api_key:
            raise LLMCallError(f"No API key configured for {self.name}")
        return self._extract(self._send(self._payload(prompt), self._url(), **self._headers()))

    def _url(self) -> str:
        return self.endpoint

    def _headers(self) -> Dict[str, str]:
        return {}

    def _payload(self, prompt: str) -> Dict[str, Any]:
        raise NotImplementedError

    def _extract(self, body: Dict[str, Any]) -> str:
        raise NotImplementedError

    def _send(self, payload: Dict[str, Any], url: str, **headers: str) -> Dict[str, Any]:
        response = self.session.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        body = response.json()
        usage = body.get("usage") or body.get("usageMetadata")
        if usage:
            logger.info("%s/%s usage: %s", self.name, self.model, usage)
        return body


class OllamaProvider(LLMProvider):
    name = "ollama"
    requires_key = False

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "system": SYSTEM_INSTRUCTION,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }

    def _extract(self, body: Dict[str, Any]) -> str:
        if body.get("eval_count"):
            logger.info("ollama/%s generated %s tokens", self.model, body["eval_count"])
        return body.get("response") or ""


class OpenAIProvider(LLMProvider):
    """Chat-completions API; Groq and OpenRouter speak the same dialect."""

    name = "openai"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "response_format": {"type": "json_object"},
        }

    def _extract(self, body: Dict[str, Any]) -> str:
        message = body["choices"][0]["message"]
        content = message.get("content") or ""
        # reasoning models may leave content empty
        if not content.strip():
            content = message.get("reasoning") or content
        return content


class GroqProvider(OpenAIProvider):
    name = "groq"


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"

    def _payload(self, prompt: str) -> Dict[str, Any]:
        payload = super()._payload(prompt)
        payload.pop("response_format")
        return payload


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "system": SYSTEM_INSTRUCTION,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": 0,
        }

    def _extract(self, body: Dict[str, Any]) -> str:
        return "".join(block.get("text", "") for block in body.get("content") or [] if block.get("type") == "text")


class GeminiProvider(LLMProvider):
    name = "gemini"

    def _url(self) -> str:
        return f"{self.endpoint}/{self.model}:generateContent?key={self.api_key}"

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "responseMimeType": "application/json",
            },
        }

    def _extract(self, body: Dict[str, Any]) -> str:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)


# Provider name -> (class, default endpoint)
PROVIDERS: Dict[str, tuple] = {
    "ollama": (OllamaProvider, "http://127.0.0.1:11434/api/generate"),
    "openai": (OpenAIProvider, "https://api.openai.com/v1/chat/completions"),
    "groq": (GroqProvider, "https://api.groq.com/openai/v1/chat/completions"),
    "openrouter": (OpenRouterProvider, "https://openrouter.ai/api/v1/chat/completions"),
    "anthropic": (AnthropicProvider, "https://api.anthropic.com/v1/messages"),
    "gemini": (GeminiProvider, "https://generativelanguage.googleapis.com/v1beta/models"),
}


class LocalLLM:
    """The configured collaborator, exposing ``complete(prompt) -> str``."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        defaults = LLMSettings()
        self.provider_name = (provider or defaults.provider).lower()
        if self.provider_name not in PROVIDERS:
            logger.warning("Unknown LLM provider %r, falling back to ollama", self.provider_name)
            self.provider_name = "ollama"
        self.model = model or defaults.model
        self.api_key = api_key or defaults.api_key
        factory, default_endpoint = PROVIDERS[self.provider_name]
        self.endpoint = endpoint or default_endpoint
        self.provider: LLMProvider = factory(self.model, self.api_key, self.endpoint)

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "LocalLLM":
        endpoint = settings.endpoint
        # the Ollama default endpoint only applies to Ollama
        if settings.provider != "ollama" and endpoint == LLMSettings.endpoint:
            endpoint = ""
        return cls(settings.model, settings.provider, settings.api_key, endpoint)

    def complete(self, prompt: str) -> str:
        """Single completion; errors propagate to the caller."""
        logger.debug("LLM request to %s (%d chars)", self.describe(), len(prompt))
        return self.provider.generate(prompt)

    def describe(self) -> str:
        return f"{self.provider_name} ({self.model})"

