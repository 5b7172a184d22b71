"""Consumes the relay's event stream and keeps the accumulated text for one request."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, List, Optional

from drawstream.client.canvas import DiagramCanvas
from drawstream.core.errors import GenerationError, StreamDecodeError
from drawstream.core.models import StreamEvent
from drawstream.core.repair import post_process
from drawstream.providers.sse import LineBuffer

logger = logging.getLogger(__name__)


class GenerationTracker:
    """Hands out increasing request ids; only the latest one may touch the canvas."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def begin(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest


class StreamReader:
    """
    Reads relay bytes for a single request.

    Content events are appended to `text` in arrival order and the canvas is
    refreshed after each one. An error event raises GenerationError. Once the
    request is superseded the reader stops and never touches the canvas again.
    """

    def __init__(
        self,
        canvas: DiagramCanvas,
        *,
        tracker: Optional[GenerationTracker] = None,
        request_id: Optional[int] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ):
        self.canvas = canvas
        self.tracker = tracker or GenerationTracker()
        self.request_id = request_id if request_id is not None else self.tracker.begin()
        self.on_delta = on_delta
        self._lines = LineBuffer()
        self._parts: List[str] = []
        self.finished = False
        self.skipped = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def superseded(self) -> bool:
        return not self.tracker.is_current(self.request_id)

    def _drop_if_superseded(self) -> bool:
        if not self.superseded:
            return False
        logger.info("Request %d superseded; dropping the rest of its stream", self.request_id)
        self.finished = True
        self._lines = LineBuffer()
        return True

    def feed(self, chunk: bytes) -> bool:
        """Process one chunk. Returns False once reading should stop."""
        if self.finished:
            return False
        if self._drop_if_superseded():
            return False
        for line in self._lines.feed(chunk):
            if self._drop_if_superseded():
                return False
            try:
                event = StreamEvent.parse_sse_line(line)
            except StreamDecodeError as e:
                self.skipped += 1
                logger.warning("Skipping malformed relay event: %s", e)
                continue
            if event is None:
                continue
            if event.terminal:
                self.finished = True
                return False
            if event.kind == "error":
                self.finished = True
                raise GenerationError(event.text)
            self._parts.append(event.text)
            if self.on_delta is not None:
                self.on_delta(event.text)
            self.canvas.update(self.text)
        return True

    def read(self, chunks: Iterable[bytes]) -> Optional[List[Any]]:
        """Consume chunks until the end marker or transport closure, then apply."""
        for chunk in chunks:
            if not self.feed(chunk):
                break
        return self.finish()

    def finish(self) -> Optional[List[Any]]:
        """Final parse of the whole buffer, applied to the canvas. None if stale or unparseable."""
        self.finished = True
        if self.superseded:
            return None
        code = post_process(self.text) or ""
        self.canvas.set_code(code)
        return self.canvas.commit(code)
