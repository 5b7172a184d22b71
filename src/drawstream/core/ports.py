from __future__ import annotations
from typing import Protocol, List, Dict, TYPE_CHECKING

from .models import ChatMessage

if TYPE_CHECKING:
    from drawstream.providers.sse import DeltaStream


class Provider(Protocol):
    """
    Interface the relay uses to talk to any LLM backend.
    """

    # Optional: surface the model name for logging
    model: str

    def open_stream(self, messages: List[ChatMessage]) -> "DeltaStream":
        """
        Send the streaming request and check its status. Must raise before
        returning if the provider rejects the call; the returned stream yields
        text deltas as they arrive.
        """
        ...

    def list_models(self) -> List[Dict[str, str]]:
        """
        Returns [{'id': ..., 'name': ...}, ...] for the configuration UI.
        """
        ...
