"""Incremental decoding of `data: <json>` streams into text deltas."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union

import httpx

from drawstream.core.errors import MidStreamFailure, StreamDecodeError
from drawstream.core.models import DONE_MARKER

logger = logging.getLogger(__name__)

# Maps one decoded JSON record to its text delta (or None when it carries none).
DeltaExtractor = Callable[[Any], Optional[str]]


class LineBuffer:
    """
    Splits an arbitrarily chunked byte stream into complete lines.

    Multi-byte UTF-8 sequences split across chunks are held back by the
    incremental decoder; the text after the last line terminator is held in
    `pending` until the next feed.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        if not text:
            return []
        *lines, self._pending = (self._pending + text).split("\n")
        return [line.rstrip("\r") for line in lines]

    def finish(self) -> str:
        """Flush the decoder and return whatever incomplete line is left."""
        self._pending += self._decoder.decode(b"", final=True)
        rest, self._pending = self._pending, ""
        return rest


def data_payload(line: str) -> Optional[str]:
    """Return the text after `data:` for an SSE data line, else None."""
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    return stripped[5:].strip()


def parse_payload(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as e:
        raise StreamDecodeError(payload, f"Failed to parse SSE: {e}") from e


class DeltaStream:
    """
    Ordered, single-use iterator of text deltas decoded from a provider stream.

    - Only complete lines are interpreted; a trailing partial line at EOF is dropped.
    - Malformed lines are logged and skipped.
    - `data: [DONE]` ends the logical stream when `stop_on_done` is set.
    - After iteration `text` equals the concatenation of every yielded delta.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        extract: DeltaExtractor,
        *,
        provider: str = "provider",
        stop_on_done: bool = True,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._chunks = chunks
        self._extract = extract
        self._provider = provider
        self._stop_on_done = stop_on_done
        self._on_close = on_close
        self._lines = LineBuffer()
        self._parts: List[str] = []
        self._started = False
        self._closed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("DeltaStream can only be consumed once")
        self._started = True
        return self._run()

    def _run(self) -> Iterator[str]:
        try:
            for chunk in self._chunks:
                for line in self._lines.feed(chunk):
                    payload = data_payload(line)
                    if not payload:
                        continue
                    if payload == DONE_MARKER:
                        if self._stop_on_done:
                            return
                        continue
                    try:
                        delta = self._extract(parse_payload(payload))
                    except StreamDecodeError as e:
                        logger.warning("%s: skipping malformed line: %s", self._provider, e)
                        continue
                    if delta:
                        self._parts.append(delta)
                        yield delta
            leftover = self._lines.finish()
            if leftover.strip():
                logger.debug("%s: dropping incomplete trailing line (%d chars)", self._provider, len(leftover))
        except httpx.HTTPError as e:
            raise MidStreamFailure(f"{self._provider} stream interrupted: {e}") from e
        finally:
            self.close()

    def collect(self, on_delta: Optional[Callable[[str], None]] = None) -> str:
        """Drain the stream, calling on_delta per delta, and return the full text."""
        for delta in self:
            if on_delta is not None:
                on_delta(delta)
        return self.text

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "DeltaStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
