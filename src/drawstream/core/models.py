from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

from .errors import RequestBuildError, StreamDecodeError

ProviderKind = Literal["openai", "anthropic"]
Role = Literal["system", "user"]

PROVIDER_KINDS = ("openai", "anthropic")
DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class ProviderConfig:
    """
    Per-request provider settings, as stored by the browser.
    Read-only to the streaming core; build a new one instead of mutating.
    """
    kind: str
    base_url: str
    api_key: str
    model: str
    display_name: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProviderConfig":
        """Accepts the browser's camelCase shape ({type, baseUrl, apiKey, model, name})."""
        if not isinstance(data, dict):
            raise RequestBuildError("Provider config must be an object")
        return cls(
            kind=str(data.get("type") or data.get("kind") or "").strip().lower(),
            base_url=str(data.get("baseUrl") or data.get("base_url") or "").strip().rstrip("/"),
            api_key=str(data.get("apiKey") or data.get("api_key") or "").strip(),
            model=str(data.get("model") or "").strip(),
            display_name=str(data.get("name") or data.get("display_name") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.display_name,
            "type": self.kind,
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
        }

    def missing_fields(self) -> list[str]:
        names = {"type": self.kind, "baseUrl": self.base_url, "apiKey": self.api_key, "model": self.model}
        return [k for k, v in names.items() if not v]

    def is_valid(self) -> bool:
        return not self.missing_fields() and self.kind in PROVIDER_KINDS

    def validate(self) -> "ProviderConfig":
        missing = self.missing_fields()
        if missing:
            raise RequestBuildError(f"Incomplete provider config, missing: {', '.join(missing)}")
        if self.kind not in PROVIDER_KINDS:
            raise RequestBuildError(f"Unsupported provider type: {self.kind}")
        return self

    @property
    def label(self) -> str:
        return f"{self.display_name or self.kind} - {self.model}"

    def __repr__(self) -> str:
        # keep the key out of logs and tracebacks
        return (
            f"ProviderConfig(kind={self.kind!r}, base_url={self.base_url!r}, "
            f"model={self.model!r}, display_name={self.display_name!r})"
        )


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class StreamEvent:
    """
    One relay event. Exactly one of content / error is set, or neither for the
    terminal marker.
    """
    kind: Literal["content", "error", "done"]
    text: str = field(default="")

    @classmethod
    def content(cls, delta: str) -> "StreamEvent":
        return cls("content", delta)

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls("error", message)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls("done")

    @property
    def terminal(self) -> bool:
        return self.kind == "done"

    def to_sse(self) -> str:
        if self.kind == "done":
            return f"data: {DONE_MARKER}\n\n"
        return f"data: {json.dumps({self.kind: self.text}, ensure_ascii=False)}\n\n"

    @classmethod
    def parse_sse_line(cls, line: str) -> Optional["StreamEvent"]:
        """
        Decode one relay line. Blank lines and non-data lines return None.
        Raises StreamDecodeError for a data line whose payload is not an event.
        """
        stripped = line.strip()
        if not stripped.startswith("data:"):
            return None
        payload = stripped[5:].strip()
        if payload == DONE_MARKER:
            return cls.done()
        try:
            obj = json.loads(payload)
        except ValueError as e:
            raise StreamDecodeError(stripped, f"Failed to parse SSE: {e}") from e
        if not isinstance(obj, dict):
            raise StreamDecodeError(stripped, "SSE payload is not an object")
        if obj.get("content"):
            return cls.content(str(obj["content"]))
        if obj.get("error"):
            return cls.error(str(obj["error"]))
        return None
