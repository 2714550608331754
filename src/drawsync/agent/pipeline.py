"""AI generation pipeline and the chat session that drives it."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Literal

from drawsync import codec
from drawsync.agent.prompts import GREETING, build_system_instruction
from drawsync.agent.provider import (
    GenerationProvider,
    ProviderConfig,
    provider_registry,
    resolve_model,
)
from drawsync.errors import (
    GenerationError,
    MalformedGenerationError,
    MissingApiKeyError,
    ParseError,
    UpstreamError,
)
from drawsync.normalizer import normalize
from drawsync.relay import Relay

logger = logging.getLogger(__name__)


def generate(
    provider_config: ProviderConfig,
    system_instruction: str,
    user_prompt: str,
    relay: Relay | None = None,
) -> str:
    """Generate a diagram and return it as canonical bare-array text.

    Raises:
        MissingApiKeyError: no API key configured.
        UnknownProviderError: provider name has no implementation.
        UpstreamError: provider answered with a non-success status.
        MalformedGenerationError: the answer is not an element array.
    """
    if not provider_config.api_key:
        raise MissingApiKeyError(f"No API key configured for {provider_config.provider}")

    provider: GenerationProvider = provider_registry.create(provider_config.provider)
    model = resolve_model(provider, provider_config.model)
    body = provider.build_request(model, system_instruction, user_prompt)

    relay = relay or Relay()
    logger.info("Generate via %s/%s (%d char prompt)", provider.name, model, len(user_prompt))
    t0 = time.perf_counter()
    resp = relay.forward(
        "POST",
        provider.relay_path,
        headers=provider.auth_headers(provider_config.api_key),
        body=json.dumps(body).encode("utf-8"),
        stream=False,
    )
    raw = resp.read().decode("utf-8", errors="replace")
    logger.debug("Provider answered %d: %d bytes, %.0fms", resp.status, len(raw), (time.perf_counter() - t0) * 1000)

    if not 200 <= resp.status < 300:
        raise UpstreamError(resp.status, raw)

    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise MalformedGenerationError(f"Provider response is not JSON: {e}") from e

    text = codec.strip_code_fences(provider.extract_text(payload))
    try:
        doc = codec.parse_document(text)
    except ParseError as e:
        logger.warning("Model output rejected: %s", e)
        raise MalformedGenerationError(f"The model did not return a diagram: {e}") from e

    elements = normalize(doc.elements)
    logger.info("Generated %d element(s)", len(elements))
    return codec.serialize_elements(elements)


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str


@dataclass
class ChatTurn:
    """Outcome of one prompt: the assistant reply and, on success, the document text."""

    reply: ChatMessage
    document_text: str | None = None
    error: GenerationError | None = None


class ChatSession:
    """Append-only chat history scoped to one interactive session.

    Only one generation may be outstanding at a time; a second ``send``
    while the first is pending raises RuntimeError.
    """

    def __init__(
        self,
        config_loader,
        relay: Relay | None = None,
        system_instruction: str | None = None,
    ) -> None:
        self._config_loader = config_loader
        self._relay = relay
        self._system = system_instruction or build_system_instruction()
        self._messages: list[ChatMessage] = [ChatMessage("assistant", GREETING)]
        self._busy = threading.Lock()

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def send(self, prompt: str) -> ChatTurn | None:
        """Run one generation. Returns None for a blank prompt."""
        if not prompt.strip():
            return None
        if not self._busy.acquire(blocking=False):
            raise RuntimeError("A generation is already in progress")
        try:
            self._messages.append(ChatMessage("user", prompt))
            try:
                text = generate(self._config_loader(), self._system, prompt, relay=self._relay)
            except GenerationError as e:
                logger.warning("Generation failed: %s", e)
                reply = ChatMessage("assistant", f"Error: {e}")
                self._messages.append(reply)
                return ChatTurn(reply=reply, error=e)
            count = len(json.loads(text))
            reply = ChatMessage("assistant", f"Here is your diagram ({count} elements).")
            self._messages.append(reply)
            return ChatTurn(reply=reply, document_text=text)
        finally:
            self._busy.release()
