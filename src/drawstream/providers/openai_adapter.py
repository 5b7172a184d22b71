# src/drawstream/providers/openai_adapter.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from drawstream.core.errors import ProviderClientError, ProviderTransientError
from drawstream.core.models import ChatMessage, ProviderConfig
from drawstream.providers.registry import ProviderRegistry
from drawstream.providers.sse import DeltaStream
from drawstream.providers.transport import HttpSettings, open_event_stream

logger = logging.getLogger(__name__)


def _classify_openai_exception(exc: Exception) -> Exception:
    """
    Convert OpenAI/client exceptions into neutral provider errors.
    Avoid hard dependency on specific SDK exception classes by inspecting attributes/message.
    """
    status = getattr(exc, "status_code", None) or getattr(exc, "http_status", None)
    msg = str(exc)

    if status is not None:
        s = int(status)
        if s == 429 or 500 <= s <= 599:
            return ProviderTransientError(msg)
        return ProviderClientError(msg)

    lower = msg.lower()
    if any(k in lower for k in ("rate limit", "temporarily unavailable", "timeout", "timed out", "connection")):
        return ProviderTransientError(msg)
    if any(k in lower for k in ("invalid_request_error", "unsupported", "parameter", "authentication")):
        return ProviderClientError(msg)
    return ProviderTransientError(msg)


def extract_openai_delta(record: Any) -> Optional[str]:
    """choices[0].delta.content, or None for records without text (role, usage, finish)."""
    try:
        content = record["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) and content else None


@ProviderRegistry.register("openai")
class OpenAIAdapter:
    """
    OpenAI-compatible chat completions:
    - streaming goes over raw HTTP so any compatible base URL works
    - model discovery uses the SDK against the same base URL
    """
    kind = "openai"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str = "",
        *,
        http: Optional[HttpSettings] = None,
        params: Optional[Dict[str, Any]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.http = http or HttpSettings()
        self.params = params or {}

    @classmethod
    def create(cls, config: ProviderConfig, *, options: Optional[Dict[str, Any]] = None,
               http: Optional[HttpSettings] = None) -> "OpenAIAdapter":
        if not config.api_key:
            raise ProviderClientError("No API key for 'openai'")
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            http=http,
            params=(options or {}).get("params") or {},
        )

    def build_request(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        return {
            "url": f"{self.base_url}/chat/completions",
            "headers": {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            "body": {
                **self.params,
                "model": self.model,
                "messages": [m.to_dict() for m in messages],
                "stream": True,
            },
        }

    def open_stream(self, messages: List[ChatMessage]) -> DeltaStream:
        req = self.build_request(messages)
        logger.info("openai stream: model=%s messages=%d", self.model, len(messages))
        return open_event_stream(
            self.http,
            provider="OpenAI",
            url=req["url"],
            headers=req["headers"],
            body=req["body"],
            extract=extract_openai_delta,
        )

    def list_models(self) -> List[Dict[str, str]]:
        try:
            client = OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.http.timeout())
            page = client.models.list()
        except Exception as e:
            raise _classify_openai_exception(e)
        return [{"id": m.id, "name": m.id} for m in page.data]
