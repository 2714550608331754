"""Generation provider interface with OpenAI-style and Anthropic-style variants."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel

from drawsync.errors import MalformedGenerationError, UnknownProviderError

logger = logging.getLogger(__name__)

ProviderName = Literal["openai", "anthropic"]


class ProviderConfig(BaseModel):
    """Provider selection persisted in the settings store."""

    provider: ProviderName = "openai"
    api_key: str = ""
    model: str = ""


@runtime_checkable
class GenerationProvider(Protocol):
    """Shapes requests and responses for one provider API family."""

    name: str
    default_model: str
    relay_path: str

    def build_request(self, model: str, system: str, prompt: str) -> dict[str, Any]:
        """Build the JSON request body."""
        ...

    def auth_headers(self, api_key: str) -> dict[str, str]:
        """Headers carrying the credential for this provider."""
        ...

    def extract_text(self, payload: dict[str, Any]) -> str:
        """Pull the single text payload out of the response envelope."""
        ...


class OpenAIProvider:
    """Chat-completions API."""

    name = "openai"
    default_model = "gpt-4o"
    relay_path = "/api/openai/v1/chat/completions"
    temperature = 0.7

    def build_request(self, model: str, system: str, prompt: str) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
        }

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def extract_text(self, payload: dict[str, Any]) -> str:
        try:
            text = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedGenerationError("Response has no choices[0].message.content") from e
        if not isinstance(text, str):
            raise MalformedGenerationError("Response message content is not text")
        return text


class AnthropicProvider:
    """Messages API."""

    name = "anthropic"
    default_model = "claude-3-5-sonnet-20240620"
    relay_path = "/api/anthropic/v1/messages"
    api_version = "2023-06-01"
    max_tokens = 4096

    def build_request(self, model: str, system: str, prompt: str) -> dict[str, Any]:
        return {
            "model": model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": self.api_version,
            "anthropic-dangerous-direct-browser-access": "true",
        }

    def extract_text(self, payload: dict[str, Any]) -> str:
        try:
            text = payload["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedGenerationError("Response has no content[0].text") from e
        if not isinstance(text, str):
            raise MalformedGenerationError("Response content block is not text")
        return text


class ProviderRegistry:
    """Registry of generation providers keyed by ProviderConfig.provider."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], GenerationProvider]] = {}

    def register(self, name: str, factory_fn: Callable[[], GenerationProvider]) -> None:
        self._factories[name] = factory_fn

    def create(self, name: str) -> GenerationProvider:
        if name not in self._factories:
            available = ", ".join(sorted(self._factories.keys()))
            raise UnknownProviderError(f"Unknown provider {name!r}. Available: {available}")
        return self._factories[name]()

    def list_providers(self) -> list[str]:
        return sorted(self._factories.keys())


def resolve_model(provider: GenerationProvider, model: str | None) -> str:
    """Trim the configured model id, falling back to the provider default."""
    model = (model or "").strip()
    return model or provider.default_model


# Module-level singleton
provider_registry = ProviderRegistry()
provider_registry.register("openai", OpenAIProvider)
provider_registry.register("anthropic", AnthropicProvider)
