"""
Streaming clients for the hosted model providers.
OpenAI and OpenRouter use the openai SDK (OpenRouter through base_url), Anthropic its own SDK,
Google models go through google-genai (API key, or Vertex AI when a project id is set).
A provider without credentials is disabled; its models are removed from the active catalog.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from alqemist.config import Settings, get_settings

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    name: str

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials for this provider are present."""

    @abstractmethod
    def stream_chat(self, model_id: str, messages: list[dict], system: str | None) -> Iterator[str]:
        """Yield text deltas for a chat completion. messages: [{"role", "content"}]."""


class OpenAIProvider(LLMProvider):
    name = "openai"
    base_url: str | None = None

    def _api_key(self) -> str:
        return self.settings.openai_api_key

    def is_configured(self) -> bool:
        return bool(self._api_key())

    def get_client(self):
        if self._client is None:
            from openai import OpenAI

            api_key = self._api_key()
            if not api_key:
                raise ValueError(f"API key is required for {self.name}")
            self._client = OpenAI(api_key=api_key, base_url=self.base_url)
        return self._client

    def stream_chat(self, model_id: str, messages: list[dict], system: str | None) -> Iterator[str]:
        client = self.get_client()
        payload = []
        if system:
            payload.append({"role": "system", "content": system})
        payload.extend(messages)
        stream = client.chat.completions.create(
            model=model_id,
            messages=payload,
            max_tokens=self.settings.max_output_tokens,
            stream=True,
        )
        for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.base_url = settings.openrouter_base_url

    def _api_key(self) -> str:
        return self.settings.openrouter_api_key


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def is_configured(self) -> bool:
        return bool(self.settings.anthropic_api_key)

    def get_client(self):
        if self._client is None:
            import anthropic

            if not self.settings.anthropic_api_key:
                raise ValueError("anthropic_api_key is required for Anthropic provider")
            self._client = anthropic.Anthropic(api_key=self.settings.anthropic_api_key)
        return self._client

    def stream_chat(self, model_id: str, messages: list[dict], system: str | None) -> Iterator[str]:
        client = self.get_client()
        kwargs = {
            "model": model_id,
            "messages": [m for m in messages if m.get("role") in ("user", "assistant")],
            "max_tokens": self.settings.max_output_tokens,
        }
        if system:
            kwargs["system"] = system
        with client.messages.stream(**kwargs) as stream:
            for text in stream.text_stream:
                yield text


class GoogleProvider(LLMProvider):
    name = "google"

    def is_configured(self) -> bool:
        return bool(self.settings.vertex_project_id or self.settings.google_ai_api_key)

    def get_client(self):
        if self._client is not None:
            return self._client
        from google import genai

        settings = self.settings
        if settings.vertex_project_id:
            from google.oauth2 import service_account

            credentials = None
            if settings.vertex_credentials_path:
                path = Path(settings.vertex_credentials_path)
                if path.is_file():
                    credentials = service_account.Credentials.from_service_account_file(
                        str(path),
                        scopes=["https://www.googleapis.com/auth/cloud-platform"],
                    )
            self._client = genai.Client(
                vertexai=True,
                project=settings.vertex_project_id,
                location=settings.vertex_location,
                credentials=credentials,
            )
        elif settings.google_ai_api_key:
            self._client = genai.Client(api_key=settings.google_ai_api_key)
        else:
            raise ValueError("google_ai_api_key or vertex_project_id is required for Google provider")
        return self._client

    def stream_chat(self, model_id: str, messages: list[dict], system: str | None) -> Iterator[str]:
        from google.genai import types

        client = self.get_client()
        contents = []
        for m in messages:
            content = (m.get("content") or "").strip()
            if not content:
                continue
            role = "user" if m.get("role") == "user" else "model"
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=content)]))

        stream = client.models.generate_content_stream(
            model=model_id,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system,
                temperature=0.7,
                max_output_tokens=self.settings.max_output_tokens,
            ),
        )
        for chunk in stream:
            if not chunk:
                continue
            text = getattr(chunk, "text", None)
            if text:
                yield text


class ProviderRegistry:
    """Provider instances by name; only configured providers are active."""

    def __init__(self, providers: list[LLMProvider]):
        self._providers = {p.name: p for p in providers}

    def get(self, name: str) -> LLMProvider | None:
        provider = self._providers.get(name)
        if provider is None or not provider.is_configured():
            return None
        return provider

    def configured_names(self) -> list[str]:
        return [name for name, p in self._providers.items() if p.is_configured()]


def build_provider_registry(settings: Settings | None = None) -> ProviderRegistry:
    settings = settings or get_settings()
    registry = ProviderRegistry(
        [
            OpenAIProvider(settings),
            AnthropicProvider(settings),
            GoogleProvider(settings),
            OpenRouterProvider(settings),
        ]
    )
    configured = registry.configured_names()
    if configured:
        logger.info("Model providers enabled: %s", ", ".join(configured))
    else:
        logger.warning("No model provider credentials configured; chat is disabled")
    return registry


_RATE_LIMIT_HINTS = ("rate limit", "rate_limit", "too many requests", "quota", "resource_exhausted")
_CONTEXT_HINTS = ("context length", "context_length", "maximum context", "too many tokens", "prompt is too long")
_AUTH_HINTS = ("api key", "api_key", "unauthorized", "authentication", "permission", "forbidden")
_UNAVAILABLE_HINTS = ("overloaded", "unavailable", "timeout", "timed out", "connection", "not found")


def classify_provider_error(exc: BaseException) -> str:
    """Map an SDK exception to rate_limit / context_limit / unavailable / auth_error / unknown."""
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "code", None)
    if not isinstance(status, int):
        status = None
    message = str(exc).lower()

    if status == 429 or any(h in message for h in _RATE_LIMIT_HINTS):
        return "rate_limit"
    if any(h in message for h in _CONTEXT_HINTS) or status == 413:
        return "context_limit"
    if status in (401, 403) or any(h in message for h in _AUTH_HINTS):
        return "auth_error"
    if status is not None and (status >= 500 or status in (404, 408)):
        return "unavailable"
    if any(h in message for h in _UNAVAILABLE_HINTS):
        return "unavailable"
    return "unknown"
