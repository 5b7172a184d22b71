"""Anthropic Messages API adapter with raw SSE streaming."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from drawstream.core.errors import MidStreamFailure, ProviderClientError
from drawstream.core.models import ChatMessage, ProviderConfig
from drawstream.providers.registry import ProviderRegistry
from drawstream.providers.sse import DeltaStream
from drawstream.providers.transport import HttpSettings, open_event_stream

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096

# No discovery endpoint, so the configuration UI gets a fixed list.
KNOWN_MODELS: List[Dict[str, str]] = [
    {"id": "claude-3-5-sonnet-20241022", "name": "Claude 3.5 Sonnet"},
    {"id": "claude-3-5-haiku-20241022", "name": "Claude 3.5 Haiku"},
    {"id": "claude-3-opus-20240229", "name": "Claude 3 Opus"},
    {"id": "claude-3-sonnet-20240229", "name": "Claude 3 Sonnet"},
    {"id": "claude-3-haiku-20240307", "name": "Claude 3 Haiku"},
]


def split_system(messages: List[ChatMessage]) -> Tuple[Optional[str], List[Dict[str, str]]]:
    """Separate the (first) system message from the conversation."""
    system_text: Optional[str] = None
    conversation: List[Dict[str, str]] = []
    for msg in messages:
        if msg.role == "system":
            if system_text is None:
                system_text = msg.content
        else:
            conversation.append(msg.to_dict())
    return system_text, conversation


def extract_anthropic_delta(record: Any) -> Optional[str]:
    """Only content_block_delta events carry text; an error event aborts the stream."""
    if not isinstance(record, dict):
        return None
    kind = record.get("type")
    if kind == "error":
        err = record.get("error") or {}
        raise MidStreamFailure(f"Anthropic stream error: {err.get('type', 'error')} {err.get('message', '')}".rstrip())
    if kind != "content_block_delta":
        return None
    delta = record.get("delta") or {}
    text = delta.get("text") if isinstance(delta, dict) else None
    return text if isinstance(text, str) and text else None


@ProviderRegistry.register("anthropic")
class AnthropicAdapter:
    """LLM provider speaking the Anthropic Messages API."""

    kind = "anthropic"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str = "",
        *,
        http: Optional[HttpSettings] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.http = http or HttpSettings()
        self.max_tokens = int(max_tokens)

    @classmethod
    def create(cls, config: ProviderConfig, *, options: Optional[Dict[str, Any]] = None,
               http: Optional[HttpSettings] = None) -> "AnthropicAdapter":
        if not config.api_key:
            raise ProviderClientError("No API key for 'anthropic'")
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            http=http,
            max_tokens=(options or {}).get("max_tokens") or DEFAULT_MAX_TOKENS,
        )

    def build_body(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        system_text, conversation = split_system(messages)
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": conversation,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if system_text is not None:
            body["system"] = system_text
        return body

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def open_stream(self, messages: List[ChatMessage]) -> DeltaStream:
        logger.info("anthropic stream: model=%s messages=%d", self.model, len(messages))
        return open_event_stream(
            self.http,
            provider="Anthropic",
            url=f"{self.base_url}/messages",
            headers=self.headers(),
            body=self.build_body(messages),
            extract=extract_anthropic_delta,
            stop_on_done=False,
        )

    def list_models(self) -> List[Dict[str, str]]:
        return [dict(m) for m in KNOWN_MODELS]
